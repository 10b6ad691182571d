"""
Sale repository contract.

Every storage backend for the Sale aggregate implements SaleRepository. The
contract carries two responsibilities beyond plain CRUD:

- Optimistic concurrency: update() compares the expected version token (by
  default the one carried on the incoming sale) with the stored token. A
  mismatch raises ConcurrencyConflict and nothing is written. On success the
  stored token is bumped and written back onto the caller's sale.
- Item diffing: update() replaces the aggregate and its items. Items in
  storage but absent from the incoming sale are deleted, unknown incoming
  items are inserted, matching ones are updated.

Repositories do not enforce business rules; callers validate first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Tuple
from uuid import UUID

from domain.line_item import LineItem
from domain.sale import Sale


@dataclass(frozen=True, slots=True)
class ItemDiff:
    """Item-level changes applied by an update."""

    inserted: Tuple[UUID, ...] = field(default_factory=tuple)
    updated: Tuple[UUID, ...] = field(default_factory=tuple)
    deleted: Tuple[UUID, ...] = field(default_factory=tuple)


def diff_items(stored_item_ids: Iterable[UUID], incoming: Iterable[LineItem]) -> ItemDiff:
    """Compute which item ids an update inserts, updates and deletes."""

    stored = list(stored_item_ids)
    stored_set = set(stored)
    incoming_ids = [item.item_id for item in incoming]
    incoming_set = set(incoming_ids)

    return ItemDiff(
        inserted=tuple(item_id for item_id in incoming_ids if item_id not in stored_set),
        updated=tuple(item_id for item_id in incoming_ids if item_id in stored_set),
        deleted=tuple(item_id for item_id in stored if item_id not in incoming_set),
    )


def page_offset(page_number: int, page_size: int) -> int:
    """Zero-based offset of a 1-based page."""

    if page_number < 1:
        raise ValueError("page_number must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    return (page_number - 1) * page_size


class SaleRepository(Protocol):
    def add(self, sale: Sale) -> None:
        ...

    def get_by_id(self, sale_id: UUID) -> Optional[Sale]:
        ...

    def update(self, sale: Sale, expected_version: Optional[int] = None) -> ItemDiff:
        """expected_version defaults to sale.version, the token the caller read."""
        ...

    def list(
        self,
        page_number: int,
        page_size: int,
        order_by: Optional[str] = None,
        filter_expr: Optional[str] = None,
    ) -> List[Sale]:
        ...

    def count(self, filter_expr: Optional[str] = None) -> int:
        ...


__all__ = ["ItemDiff", "diff_items", "page_offset", "SaleRepository"]
