"""
In-memory sale repository.

Implements the SaleRepository contract on a process-local dict. Used as the
default backend for development and by the test suite.

Stored aggregates are deep copies: callers never share objects with storage,
so a fetched sale can be mutated freely and only reaches storage via update().

Filtering evaluates the parsed predicate list in Python:
- string operators (contains/startsWith/endsWith/eq on text) are case-sensitive
- range and equality comparisons use the stored attribute's type
- a predicate on a missing (None) or incomparable value does not match
- predicates on unknown fields are ignored
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from domain.errors import ConcurrencyConflict, SaleNotFound
from domain.filter_query import FilterOperator, Predicate, ValueType, coerce_value, parse_filter
from domain.ordering import OrderClause, parse_order
from domain.sale import SALE_QUERY_FIELDS, Sale, resolve_sale_field, sale_field_value
from repositories.sale_repository import ItemDiff, diff_items, page_offset

logger = logging.getLogger(__name__)

_TEXT_OPERATORS = {
    FilterOperator.CONTAINS,
    FilterOperator.STARTS_WITH,
    FilterOperator.ENDS_WITH,
}


def _text_of(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _align(actual: Any, predicate: Predicate) -> Any:
    """Convert a predicate value to the type of the stored value, or None if impossible."""

    value = predicate.value
    if isinstance(actual, Decimal):
        if predicate.value_type is ValueType.DECIMAL:
            return value
        coerced, value_type = coerce_value(_text_of(value))
        return coerced if value_type is ValueType.DECIMAL else None
    if isinstance(actual, datetime):
        if predicate.value_type is ValueType.DATETIME:
            return value
        coerced, value_type = coerce_value(_text_of(value))
        return coerced if value_type is ValueType.DATETIME else None
    return _text_of(value)


def matches(sale: Sale, predicate: Predicate) -> bool:
    """Evaluate one predicate against a sale. Unknown fields always match."""

    attribute = resolve_sale_field(predicate.field)
    if attribute is None:
        return True

    actual = sale_field_value(sale, attribute)
    if actual is None:
        return False

    if predicate.operator in _TEXT_OPERATORS:
        text, needle = _text_of(actual), _text_of(predicate.value)
        if predicate.operator is FilterOperator.CONTAINS:
            return needle in text
        if predicate.operator is FilterOperator.STARTS_WITH:
            return text.startswith(needle)
        return text.endswith(needle)

    expected = _align(actual, predicate)
    if expected is None:
        return False
    if predicate.operator is FilterOperator.EQ:
        return actual == expected
    if predicate.operator is FilterOperator.GTE:
        return actual >= expected
    return actual <= expected


def _warn_unknown_fields(predicates: List[Predicate]) -> None:
    for predicate in predicates:
        if resolve_sale_field(predicate.field) is None:
            logger.warning(
                f"Ignoring filter on unknown field '{predicate.field}'",
                extra={"filter_field": predicate.field},
            )


def sort_sales(sales: List[Sale], clauses: List[OrderClause]) -> List[Sale]:
    """Stable multi-key sort; None values sort last in ascending order."""

    ordered = list(sales)
    for clause in reversed(clauses):
        attribute = resolve_sale_field(clause.field)
        if attribute is None:
            continue

        def key(sale: Sale, attribute: str = attribute) -> tuple:
            value = sale_field_value(sale, attribute)
            return (value is None, value if value is not None else 0)

        ordered.sort(key=key, reverse=clause.descending)
    return ordered


class InMemorySaleRepository:
    """Thread-safe, process-local SaleRepository."""

    def __init__(self) -> None:
        self._sales: Dict[UUID, Sale] = {}
        self._lock = threading.RLock()

    def add(self, sale: Sale) -> None:
        with self._lock:
            if sale.sale_id in self._sales:
                raise ValueError(f"Sale {sale.sale_id} already exists")
            self._sales[sale.sale_id] = copy.deepcopy(sale)

    def get_by_id(self, sale_id: UUID) -> Optional[Sale]:
        with self._lock:
            stored = self._sales.get(sale_id)
            return copy.deepcopy(stored) if stored is not None else None

    def update(self, sale: Sale, expected_version: Optional[int] = None) -> ItemDiff:
        expected = sale.version if expected_version is None else expected_version
        with self._lock:
            stored = self._sales.get(sale.sale_id)
            if stored is None:
                raise SaleNotFound(sale.sale_id)
            if stored.version != expected:
                logger.warning(
                    f"Version conflict updating sale {sale.sale_id}",
                    extra={
                        "sale_id": str(sale.sale_id),
                        "expected_version": expected,
                        "stored_version": stored.version,
                    },
                )
                raise ConcurrencyConflict(sale.sale_id, expected, stored.version)

            diff = diff_items((item.item_id for item in stored.items), sale.items)
            replacement = copy.deepcopy(sale)
            replacement.version = stored.version + 1
            self._sales[sale.sale_id] = replacement
            sale.version = replacement.version
            return diff

    def _filtered(self, filter_expr: Optional[str]) -> List[Sale]:
        predicates = parse_filter(filter_expr)
        _warn_unknown_fields(predicates)
        return [
            sale
            for sale in self._sales.values()
            if all(matches(sale, predicate) for predicate in predicates)
        ]

    def list(
        self,
        page_number: int,
        page_size: int,
        order_by: Optional[str] = None,
        filter_expr: Optional[str] = None,
    ) -> List[Sale]:
        offset = page_offset(page_number, page_size)
        clauses = parse_order(order_by, allowed_fields=SALE_QUERY_FIELDS)
        with self._lock:
            ordered = sort_sales(self._filtered(filter_expr), clauses)
            return [copy.deepcopy(sale) for sale in ordered[offset:offset + page_size]]

    def count(self, filter_expr: Optional[str] = None) -> int:
        with self._lock:
            return len(self._filtered(filter_expr))


__all__ = ["InMemorySaleRepository", "matches", "sort_sales"]
