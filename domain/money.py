"""
Domain: money and quantity primitives plus the quantity discount tiers.

Rules implemented here:
- A line item quantity is an integer in [1, 20]; anything else is rejected
  immediately (fail-fast) with InvalidQuantity.
- Monetary amounts are exact Decimals and never negative.
- Discount tiers, applied to unit_price x quantity:
  - quantity in [10, 20]: 20%
  - quantity in [ 4,  9]: 10%
  - quantity in [ 1,  3]: no discount

No rounding is applied; totals are exact Decimal arithmetic.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import InvalidAmount, InvalidQuantity

MIN_QUANTITY: int = 1
MAX_QUANTITY: int = 20


@dataclass(frozen=True, slots=True)
class Quantity:
    """Validated count of identical units on a line item."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise InvalidQuantity("Quantity must be an integer.", {"quantity": self.value})
        if self.value < MIN_QUANTITY:
            raise InvalidQuantity("Quantity must be a positive number.", {"quantity": self.value})
        if self.value > MAX_QUANTITY:
            raise InvalidQuantity(
                f"Cannot sell more than {MAX_QUANTITY} identical items.", {"quantity": self.value}
            )

    @staticmethod
    def of(value: Any) -> "Quantity":
        return Quantity(value)


def to_money(value: Any, *, name: str = "amount") -> Decimal:
    """
    Convert a caller-supplied amount to a non-negative Decimal.

    Floats go through str() so 9.99 stays 9.99 rather than its binary expansion.
    """

    if isinstance(value, bool):
        raise InvalidAmount(f"{name} must be a number", {name: value})
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmount(f"{name} must be a number", {name: value}) from None
    else:
        raise InvalidAmount(f"{name} must be a number", {name: value})

    if not amount.is_finite():
        raise InvalidAmount(f"{name} must be a finite number", {name: value})
    if amount < 0:
        raise InvalidAmount(f"{name} must be a non-negative number", {name: value})
    return amount


@dataclass(frozen=True, slots=True)
class DiscountTier:
    min_quantity: int
    max_quantity: int
    rate: Decimal

    def applies_to(self, quantity: int) -> bool:
        return self.min_quantity <= quantity <= self.max_quantity


DISCOUNT_TIERS: tuple[DiscountTier, ...] = (
    DiscountTier(10, 20, Decimal("0.20")),
    DiscountTier(4, 9, Decimal("0.10")),
    DiscountTier(1, 3, Decimal("0")),
)


def discount_rate(quantity: int) -> Decimal:
    """Resolve the discount rate for a quantity; raises for quantities outside every tier."""

    for tier in DISCOUNT_TIERS:
        if tier.applies_to(quantity):
            return tier.rate
    raise InvalidQuantity("Quantity is outside every discount tier.", {"quantity": quantity})


def discount_for(quantity: int, unit_price: Decimal) -> Decimal:
    """Discount owed on a line: rate(quantity) x unit_price x quantity."""

    return unit_price * quantity * discount_rate(quantity)


__all__ = [
    "MIN_QUANTITY",
    "MAX_QUANTITY",
    "Quantity",
    "to_money",
    "DiscountTier",
    "DISCOUNT_TIERS",
    "discount_rate",
    "discount_for",
]
