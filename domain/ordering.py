"""
Domain: ordering expression parser for listing sales.

Format: comma-separated clauses "<field> [asc|desc]", direction optional and
case-insensitive, defaulting to asc. Example: "SaleDate desc, TotalAmount asc".

Any clause that does not parse (or names a field outside `allowed_fields`,
when given) discards the whole expression in favor of the default ordering:
creation timestamp, newest first.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

_CLAUSE_PATTERN = re.compile(
    r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\s+(?P<direction>asc|desc))?$",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class OrderClause:
    field: str
    descending: bool = False


DEFAULT_ORDER_FIELD: str = "CreatedAt"


def default_order() -> List[OrderClause]:
    return [OrderClause(DEFAULT_ORDER_FIELD, descending=True)]


def parse_order(raw: Optional[str], allowed_fields: Optional[Iterable[str]] = None) -> List[OrderClause]:
    """
    Parse an ordering expression.

    Args:
        raw: Raw order string, e.g. "SaleDate desc, TotalAmount asc"
        allowed_fields: Optional field names accepted (case-insensitive)

    Returns:
        Ordered clauses, or the default ordering when raw is blank or unparsable.
    """

    if raw is None or not raw.strip():
        return default_order()

    allowed = {name.lower() for name in allowed_fields} if allowed_fields is not None else None

    clauses: List[OrderClause] = []
    for part in raw.split(","):
        match = _CLAUSE_PATTERN.match(part.strip())
        if match is None or (allowed is not None and match["field"].lower() not in allowed):
            logger.info(
                f"Unrecognized order expression '{raw}', using default ordering",
                extra={"order_expression": raw, "bad_clause": part.strip()},
            )
            return default_order()
        direction = (match["direction"] or "asc").lower()
        clauses.append(OrderClause(match["field"], descending=direction == "desc"))
    return clauses


__all__ = ["OrderClause", "DEFAULT_ORDER_FIELD", "default_order", "parse_order"]
