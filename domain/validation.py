"""
Domain: cross-field validation for line items and sales.

Validation is a pair of standalone functions rather than methods on the
entities. Both return the complete, ordered list of violated rules; an empty
list means valid. They never mutate their input and never stop at the first
failure, so a caller can surface every broken rule at once.

Rules (rule_id: meaning):
- Line item
  - product_id.required, product_name.required
  - quantity.range: 1 <= quantity <= 20
  - unit_price.non_negative
  - discount.tier: discount matches the quantity tier (only when not cancelled)
- Sale
  - sale_number.required, sale_number.max_length (50)
  - customer_id.required, customer_name.required
  - branch_id.required, branch_name.required
  - sale_date.not_future
  - items.required: at least one line item
  - items[i].<rule>: every line item rule, per item
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from .line_item import LineItem
from .money import MAX_QUANTITY, MIN_QUANTITY, discount_for
from .sale import Sale
from .time import as_utc, utc_now

SALE_NUMBER_MAX_LENGTH: int = 50


@dataclass(frozen=True, slots=True)
class Violation:
    rule_id: str
    message: str


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def validate_line_item(item: LineItem) -> List[Violation]:
    violations: List[Violation] = []

    if _is_blank(item.product_id):
        violations.append(Violation("product_id.required", "Product ID cannot be empty."))
    if _is_blank(item.product_name):
        violations.append(Violation("product_name.required", "Product name cannot be empty."))

    quantity_in_range = MIN_QUANTITY <= item.quantity <= MAX_QUANTITY
    if item.quantity < MIN_QUANTITY:
        violations.append(Violation("quantity.range", "Quantity must be greater than 0."))
    elif item.quantity > MAX_QUANTITY:
        violations.append(Violation("quantity.range", f"Quantity cannot exceed {MAX_QUANTITY}."))

    if item.unit_price < 0:
        violations.append(Violation("unit_price.non_negative", "Unit price must be a non-negative number."))

    # Out-of-range quantities have no tier; quantity.range already reports them.
    if not item.is_cancelled and quantity_in_range:
        expected: Decimal = discount_for(item.quantity, item.unit_price)
        if item.discount != expected:
            violations.append(
                Violation("discount.tier", "Discount rules violated for the item's quantity.")
            )

    return violations


def validate_sale(sale: Sale, *, now: Optional[datetime] = None) -> List[Violation]:
    """
    Validate a sale header and every line item it owns.

    Args:
        sale: Sale aggregate to check
        now: Reference time for the future-date rule (defaults to the current UTC time)

    Returns:
        All violations, sale-level rules first, then per-item rules in item order.
    """

    reference = as_utc(now) if now is not None else utc_now()
    violations: List[Violation] = []

    if _is_blank(sale.sale_number):
        violations.append(Violation("sale_number.required", "Sale number cannot be empty."))
    elif len(sale.sale_number) > SALE_NUMBER_MAX_LENGTH:
        violations.append(
            Violation(
                "sale_number.max_length",
                f"Sale number cannot exceed {SALE_NUMBER_MAX_LENGTH} characters.",
            )
        )

    if _is_blank(sale.customer_id):
        violations.append(Violation("customer_id.required", "Customer ID cannot be empty."))
    if _is_blank(sale.customer_name):
        violations.append(Violation("customer_name.required", "Customer name cannot be empty."))
    if _is_blank(sale.branch_id):
        violations.append(Violation("branch_id.required", "Branch ID cannot be empty."))
    if _is_blank(sale.branch_name):
        violations.append(Violation("branch_name.required", "Branch name cannot be empty."))

    if as_utc(sale.sale_date) > reference:
        violations.append(Violation("sale_date.not_future", "Sale date cannot be in the future."))

    items = sale.items
    if not items:
        violations.append(Violation("items.required", "A sale must have at least one item."))

    for index, item in enumerate(items):
        for violation in validate_line_item(item):
            violations.append(Violation(f"items[{index}].{violation.rule_id}", violation.message))

    return violations


__all__ = [
    "SALE_NUMBER_MAX_LENGTH",
    "Violation",
    "validate_line_item",
    "validate_sale",
]
