"""
Domain: filter expression parser for listing sales.

Grammar (segments joined by '&', whitespace around tokens ignored):
- field=value     exact match
- field=*value*   substring match
- field=*value    suffix match
- field=value*    prefix match
- _min<Field>=v   <Field> >= v   (prefix matched case-insensitively)
- _max<Field>=v   <Field> <= v

Range values are coerced in order: decimal number, date/time, raw string.
Equality and wildcard values stay strings.

Parsing is total: malformed segments (no '=', empty field, empty range
value, a wildcard with nothing inside) are dropped and the rest are kept.
An empty result means "no filtering". All predicates are AND-combined.

The output is a storage-agnostic predicate list; repositories compile it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Tuple

from .time import as_utc

logger = logging.getLogger(__name__)

_DECIMAL_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


class FilterOperator(str, Enum):
    EQ = "eq"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GTE = "gte"
    LTE = "lte"


class ValueType(str, Enum):
    DECIMAL = "decimal"
    DATETIME = "datetime"
    STRING = "string"


@dataclass(frozen=True, slots=True)
class Predicate:
    field: str
    operator: FilterOperator
    value: Any
    value_type: ValueType = ValueType.STRING


_RANGE_PREFIXES = {
    "_min": FilterOperator.GTE,
    "_max": FilterOperator.LTE,
}


def coerce_value(raw: str) -> Tuple[Any, ValueType]:
    """
    Coerce a raw filter value: decimal first, then date/time, else the string itself.

    Naive date/times are taken as UTC. A date/time with no UTC equivalent
    stays a string.
    """

    text = raw.strip()
    if _DECIMAL_PATTERN.match(text):
        return Decimal(text), ValueType.DECIMAL

    try:
        parsed = as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return raw, ValueType.STRING
    return parsed, ValueType.DATETIME


def _parse_segment(segment: str) -> Optional[Predicate]:
    if "=" not in segment:
        return None

    name, _, raw_value = segment.partition("=")
    name = name.strip()
    value = raw_value.strip()
    if not name:
        return None

    operator = _RANGE_PREFIXES.get(name[:4].lower())
    if operator is not None:
        field_name = name[4:].strip()
        if not field_name or not value:
            return None
        coerced, value_type = coerce_value(value)
        return Predicate(field_name, operator, coerced, value_type)

    if value.startswith("*") and value.endswith("*"):
        operator, needle = FilterOperator.CONTAINS, value.strip("*")
    elif value.startswith("*"):
        operator, needle = FilterOperator.ENDS_WITH, value.lstrip("*")
    elif value.endswith("*"):
        operator, needle = FilterOperator.STARTS_WITH, value.rstrip("*")
    else:
        return Predicate(name, FilterOperator.EQ, value)

    if not needle:
        return None
    return Predicate(name, operator, needle)


def parse_filter(raw: Optional[str]) -> List[Predicate]:
    """
    Parse a raw filter string into AND-combined predicates.

    Never raises on malformed input; bad segments are skipped.

    Example:
        parse_filter("CustomerName=Test*&_minTotalAmount=50")
        # [Predicate("CustomerName", STARTS_WITH, "Test"),
        #  Predicate("TotalAmount", GTE, Decimal("50"), DECIMAL)]
    """

    if raw is None or not raw.strip():
        return []

    predicates: List[Predicate] = []
    for segment in raw.split("&"):
        segment = segment.strip()
        if not segment:
            continue
        predicate = _parse_segment(segment)
        if predicate is None:
            logger.debug(
                f"Skipping malformed filter segment '{segment}'",
                extra={"filter_segment": segment},
            )
            continue
        predicates.append(predicate)
    return predicates


__all__ = [
    "FilterOperator",
    "ValueType",
    "Predicate",
    "coerce_value",
    "parse_filter",
]
