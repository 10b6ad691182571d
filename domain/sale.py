"""
Domain: Sale aggregate.

A Sale owns an ordered collection of LineItems and is the single consistency
unit for them. Items cannot be referenced or mutated outside their sale.

Rules implemented here:
- status is Active on creation; cancel() is the only transition and it is
  one-way (Active -> Cancelled). Cancelling twice is an error.
- add_item / remove_item / update_details are rejected once Cancelled.
- An item id appears at most once; adding it again is an error.
- total_amount always equals the sum of total_amount over non-cancelled items,
  re-established after every add, remove and cancel.
- Cancelling the sale cascades to every item still active.
- updated_at is stamped on every mutation.
- version is an opaque optimistic-concurrency token managed by storage.

Validation is not embedded here; see domain/validation.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from .errors import AlreadyCancelled, DuplicateItem, InvalidSaleDate, ItemBoundElsewhere, SaleCancelled
from .line_item import LineItem
from .time import as_utc, require_utc_timestamp, utc_now


class SaleStatus(str, Enum):
    ACTIVE = "Active"
    CANCELLED = "Cancelled"


@dataclass(slots=True)
class Sale:
    """
    Sale aggregate root.

    Use Sale.create() for new sales. The plain constructor rehydrates stored
    sales: it binds the given items to sale_id and recomputes total_amount.
    """

    sale_id: UUID
    sale_number: str
    sale_date: datetime
    customer_id: str
    customer_name: str
    branch_id: str
    branch_name: str
    status: SaleStatus = SaleStatus.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    version: int = 0
    _items: List[LineItem] = field(default_factory=list, repr=False)
    total_amount: Decimal = field(init=False, default=Decimal("0"))

    def __post_init__(self) -> None:
        try:
            self.sale_date = as_utc(self.sale_date)
        except ValueError as exc:
            raise InvalidSaleDate(str(exc), {"sale_date": self.sale_date.isoformat()}) from exc
        require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)
        for item in self._items:
            if item.sale_id is None:
                item.sale_id = self.sale_id
            elif item.sale_id != self.sale_id:
                raise ItemBoundElsewhere(
                    "SaleItem is already associated with a different Sale.",
                    {"item_id": str(item.item_id), "sale_id": str(item.sale_id)},
                )
        self._recalculate_total()

    @staticmethod
    def create(
        sale_number: str,
        sale_date: datetime,
        customer_id: str,
        customer_name: str,
        branch_id: str,
        branch_name: str,
        *,
        sale_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> "Sale":
        return Sale(
            sale_id=sale_id or uuid4(),
            sale_number=sale_number,
            sale_date=sale_date,
            customer_id=customer_id,
            customer_name=customer_name,
            branch_id=branch_id,
            branch_name=branch_name,
            created_at=now or utc_now(),
        )

    @property
    def items(self) -> tuple[LineItem, ...]:
        """Read-only view of the line items in insertion order."""

        return tuple(self._items)

    @property
    def is_cancelled(self) -> bool:
        return self.status is SaleStatus.CANCELLED

    def find_item(self, item_id: UUID) -> Optional[LineItem]:
        for item in self._items:
            if item.item_id == item_id:
                return item
        return None

    def add_item(self, item: LineItem, *, now: Optional[datetime] = None) -> None:
        self._require_active("Cannot add items to a cancelled sale.")
        if self.find_item(item.item_id) is not None:
            raise DuplicateItem(
                "SaleItem is already part of this Sale.",
                {"item_id": str(item.item_id), "sale_id": str(self.sale_id)},
            )
        stamp = now or utc_now()
        item.bind_to(self.sale_id, now=stamp)
        self._items.append(item)
        self._recalculate_total()
        self.updated_at = stamp

    def remove_item(self, item_id: UUID, *, now: Optional[datetime] = None) -> bool:
        """Remove an item by id. Returns False, changing nothing, when it is absent."""

        self._require_active("Cannot remove items from a cancelled sale.")
        item = self.find_item(item_id)
        if item is None:
            return False
        self._items.remove(item)
        self._recalculate_total()
        self.updated_at = now or utc_now()
        return True

    def cancel(self, *, now: Optional[datetime] = None) -> List[LineItem]:
        """
        Cancel the sale and cascade to its items.

        Returns the items that were cancelled by this call (items cancelled
        earlier are left untouched).
        """

        if self.is_cancelled:
            raise AlreadyCancelled("Sale is already cancelled.", {"sale_id": str(self.sale_id)})

        stamp = now or utc_now()
        self.status = SaleStatus.CANCELLED
        cancelled: List[LineItem] = []
        for item in self._items:
            if not item.is_cancelled:
                item.cancel(now=stamp)
                cancelled.append(item)
        self._recalculate_total()
        self.updated_at = stamp
        return cancelled

    def update_details(
        self, customer_name: str, branch_name: str, *, now: Optional[datetime] = None
    ) -> None:
        self._require_active("Cannot update details of a cancelled sale.")
        self.customer_name = customer_name
        self.branch_name = branch_name
        self.updated_at = now or utc_now()

    def _require_active(self, message: str) -> None:
        if self.is_cancelled:
            raise SaleCancelled(message, {"sale_id": str(self.sale_id)})

    def _recalculate_total(self) -> None:
        self.total_amount = sum(
            (item.total_amount for item in self._items if not item.is_cancelled),
            Decimal("0"),
        )


# Public query field name -> Sale attribute (also the storage column name).
SALE_QUERY_FIELDS: Dict[str, str] = {
    "SaleNumber": "sale_number",
    "SaleDate": "sale_date",
    "CustomerId": "customer_id",
    "CustomerName": "customer_name",
    "BranchId": "branch_id",
    "BranchName": "branch_name",
    "TotalAmount": "total_amount",
    "Status": "status",
    "CreatedAt": "created_at",
    "UpdatedAt": "updated_at",
}

_FIELDS_BY_LOWER: Dict[str, str] = {name.lower(): attr for name, attr in SALE_QUERY_FIELDS.items()}


def resolve_sale_field(name: str) -> Optional[str]:
    """Map a query field name (case-insensitive) to a Sale attribute, or None if unknown."""

    return _FIELDS_BY_LOWER.get(name.strip().lower())


def sale_field_value(sale: Sale, attribute: str) -> Any:
    value = getattr(sale, attribute)
    if isinstance(value, SaleStatus):
        return value.value
    return value


__all__ = [
    "SaleStatus",
    "Sale",
    "SALE_QUERY_FIELDS",
    "resolve_sale_field",
    "sale_field_value",
]
