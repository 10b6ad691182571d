"""
Domain: LineItem entity.

A line item is one product entry within a sale. It is owned exclusively by
its Sale aggregate; the aggregate binds it to its own sale_id and is the only
caller of the mutating methods below.

Invariants:
- While not cancelled: discount == tier(quantity) applied to unit_price x quantity,
  and total_amount == unit_price x quantity - discount.
- Once cancelled: discount == 0 and total_amount == 0. Cancellation is terminal
  and cancelling twice is an error.
- A line item is bound to at most one sale_id for its whole life.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

from .errors import AlreadyCancelled, ItemAlreadyCancelled, ItemBoundElsewhere
from .money import Quantity, discount_for, to_money
from .time import require_utc_timestamp, utc_now

_ZERO = Decimal("0")


@dataclass(slots=True)
class LineItem:
    """
    Mutable line item with derived discount and total.

    Build new items with LineItem.create(); the plain constructor exists for
    rehydrating stored rows and performs no tier computation.
    """

    item_id: UUID
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total_amount: Decimal
    is_cancelled: bool = False
    sale_id: Optional[UUID] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @staticmethod
    def create(
        product_id: str,
        product_name: str,
        quantity: Any,
        unit_price: Any,
        *,
        item_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> "LineItem":
        """
        Create a new, unbound line item.

        Raises:
            InvalidQuantity: quantity <= 0 or quantity > 20
            InvalidAmount: unit_price is negative or not a number
        """

        qty = Quantity.of(quantity).value
        price = to_money(unit_price, name="unit_price")
        discount = discount_for(qty, price)
        return LineItem(
            item_id=item_id or uuid4(),
            product_id=product_id,
            product_name=product_name,
            quantity=qty,
            unit_price=price,
            discount=discount,
            total_amount=price * qty - discount,
            created_at=now or utc_now(),
        )

    @property
    def gross_amount(self) -> Decimal:
        return self.unit_price * self.quantity

    def bind_to(self, sale_id: UUID, *, now: Optional[datetime] = None) -> None:
        if self.sale_id is not None and self.sale_id != sale_id:
            raise ItemBoundElsewhere(
                "SaleItem is already associated with a different Sale.",
                {"item_id": str(self.item_id), "sale_id": str(self.sale_id)},
            )
        self.sale_id = sale_id
        self.updated_at = now or utc_now()

    def change_quantity_and_price(
        self, quantity: Any, unit_price: Any, *, now: Optional[datetime] = None
    ) -> None:
        if self.is_cancelled:
            raise ItemAlreadyCancelled("Cannot update a cancelled item.", {"item_id": str(self.item_id)})

        qty = Quantity.of(quantity).value
        price = to_money(unit_price, name="unit_price")
        self.quantity = qty
        self.unit_price = price
        self.discount = discount_for(qty, price)
        self.total_amount = price * qty - self.discount
        self.updated_at = now or utc_now()

    def cancel(self, *, now: Optional[datetime] = None) -> None:
        if self.is_cancelled:
            raise AlreadyCancelled("Sale item is already cancelled.", {"item_id": str(self.item_id)})
        self.is_cancelled = True
        self.discount = _ZERO
        self.total_amount = _ZERO
        self.updated_at = now or utc_now()


__all__ = ["LineItem"]
