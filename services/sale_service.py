"""
Sale service: command and query handlers for the Sale aggregate.

Handles:
- CreateSale, AddItem, RemoveItem, UpdateSaleDetails, CancelSale
- GetSale, GetItem, ListSales

Every handler returns a Result (Ok | Err) instead of raising for expected
failures. Err.kind is one of not_found, domain_validation,
invalid_state_transition or concurrency_conflict; validation failures carry
the complete list of violated rules.

Command flow for an existing sale, run under a per-sale lock:
  fetch -> reject if cancelled -> mutate -> validate -> persist -> publish
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, List, Optional, Sequence, Tuple
from uuid import UUID

from domain.errors import ConcurrencyConflict, ErrorKind, SaleDomainError, SaleNotFound
from domain.events import (
    ItemCancelledEvent,
    SaleCancelledEvent,
    SaleCreatedEvent,
    SaleEvent,
    SaleModifiedEvent,
)
from domain.line_item import LineItem
from domain.money import MAX_QUANTITY, MIN_QUANTITY
from domain.result import Err, Ok, Result
from domain.sale import Sale
from domain.time import utc_now
from domain.validation import Violation, validate_sale
from repositories.sale_repository import SaleRepository
from services.event_publisher import EventPublisher, LoggingEventPublisher
from services.sale_locks import KeyedLocks

logger = logging.getLogger(__name__)

MIN_UNIT_PRICE = Decimal("0.01")
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True, slots=True)
class SaleItemInput:
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True, slots=True)
class CreateSaleCommand:
    sale_number: str
    sale_date: datetime
    customer_id: str
    customer_name: str
    branch_id: str
    branch_name: str
    items: Sequence[SaleItemInput] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class AddItemCommand:
    sale_id: UUID
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True, slots=True)
class RemoveItemCommand:
    sale_id: UUID
    item_id: UUID


@dataclass(frozen=True, slots=True)
class UpdateSaleDetailsCommand:
    sale_id: UUID
    customer_name: str
    branch_name: str


@dataclass(frozen=True, slots=True)
class CancelSaleCommand:
    sale_id: UUID


@dataclass(frozen=True, slots=True)
class ListSalesQuery:
    page_number: int = 1
    page_size: Optional[int] = None  # None: the service's default page size
    order_by: Optional[str] = None
    filter_expr: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SalePage:
    items: List[Sale]
    total_count: int
    page_number: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total_count + self.page_size - 1) // self.page_size


def validate_item_input(item: Any, prefix: str = "") -> List[Violation]:
    """
    Check a requested line item before it is built.

    Stricter than line item validation: the unit price must be at least 0.01.
    """

    violations: List[Violation] = []
    if not str(item.product_id or "").strip():
        violations.append(Violation(f"{prefix}product_id.required", "Product ID is required."))
    if not str(item.product_name or "").strip():
        violations.append(Violation(f"{prefix}product_name.required", "Product name is required."))

    quantity = item.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        violations.append(Violation(f"{prefix}quantity.range", "Quantity must be a whole number."))
    elif quantity < MIN_QUANTITY:
        violations.append(Violation(f"{prefix}quantity.range", "Quantity must be greater than 0."))
    elif quantity > MAX_QUANTITY:
        violations.append(Violation(f"{prefix}quantity.range", f"Quantity cannot exceed {MAX_QUANTITY}."))

    try:
        price = Decimal(str(item.unit_price))
    except InvalidOperation:
        price = None
    if price is None or not price.is_finite() or price < MIN_UNIT_PRICE:
        violations.append(Violation(f"{prefix}unit_price.min", "Unit price must be a positive number."))

    return violations


def validate_list_query(query: ListSalesQuery) -> List[Violation]:
    violations: List[Violation] = []
    if query.page_number < 1:
        violations.append(Violation("page_number.min", "Page number must be at least 1."))
    if not 1 <= query.page_size <= MAX_PAGE_SIZE:
        violations.append(
            Violation("page_size.range", f"Page size must be between 1 and {MAX_PAGE_SIZE}.")
        )
    return violations


def _not_found(message: str) -> Err:
    return Err(kind=ErrorKind.NOT_FOUND, message=message)


# A mutation returns the value to hand back to the caller plus the events to publish.
Mutation = Callable[[Sale, datetime], Tuple[Any, List[SaleEvent]]]


class SaleService:
    def __init__(
        self,
        repository: SaleRepository,
        *,
        publisher: Optional[EventPublisher] = None,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utc_now,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._repository = repository
        self._publisher = publisher or LoggingEventPublisher()
        self._locks = locks or KeyedLocks()
        self._clock = clock
        self._default_page_size = default_page_size

    def _publish(self, events: Sequence[SaleEvent]) -> None:
        for event in events:
            self._publisher.publish(event)

    def _mutate(self, sale_id: UUID, rejection: str, mutation: Mutation) -> Result:
        with self._locks.hold(sale_id):
            sale = self._repository.get_by_id(sale_id)
            if sale is None:
                return _not_found(f"Sale with ID {sale_id} not found.")
            if sale.is_cancelled:
                return Err(kind=ErrorKind.INVALID_STATE_TRANSITION, message=rejection)

            now = self._clock()
            try:
                value, events = mutation(sale, now)
            except SaleDomainError as exc:
                return Err.from_exception(exc)
            if isinstance(value, Err):
                return value

            violations = validate_sale(sale, now=now)
            if violations:
                return Err.validation(violations)

            try:
                self._repository.update(sale)
            except (ConcurrencyConflict, SaleNotFound) as exc:
                return Err.from_exception(exc)

        self._publish(events)
        return Ok(value)

    def create_sale(self, command: CreateSaleCommand) -> Result:
        now = self._clock()
        violations: List[Violation] = []
        try:
            sale = Sale.create(
                command.sale_number,
                command.sale_date,
                command.customer_id,
                command.customer_name,
                command.branch_id,
                command.branch_name,
                now=now,
            )
        except SaleDomainError as exc:
            return Err.from_exception(exc)

        for index, item_input in enumerate(command.items):
            item_violations = validate_item_input(item_input, prefix=f"items[{index}].")
            if item_violations:
                violations.extend(item_violations)
                continue
            sale.add_item(
                LineItem.create(
                    item_input.product_id,
                    item_input.product_name,
                    item_input.quantity,
                    item_input.unit_price,
                    now=now,
                ),
                now=now,
            )

        violations.extend(validate_sale(sale, now=now))
        if violations:
            return Err.validation(violations)

        self._repository.add(sale)
        logger.info(
            f"Sale {sale.sale_number} created",
            extra={"sale_id": str(sale.sale_id), "item_count": len(sale.items)},
        )
        self._publish([SaleCreatedEvent(sale.sale_id, occurred_at=now)])
        return Ok(sale)

    def add_item(self, command: AddItemCommand) -> Result:
        violations = validate_item_input(command)
        if violations:
            return Err.validation(violations)

        def mutation(sale: Sale, now: datetime) -> Tuple[Any, List[SaleEvent]]:
            item = LineItem.create(
                command.product_id,
                command.product_name,
                command.quantity,
                command.unit_price,
                now=now,
            )
            sale.add_item(item, now=now)
            return item, [SaleModifiedEvent(sale.sale_id, occurred_at=now)]

        return self._mutate(command.sale_id, "Cannot add items to a cancelled sale.", mutation)

    def remove_item(self, command: RemoveItemCommand) -> Result:
        def mutation(sale: Sale, now: datetime) -> Tuple[Any, List[SaleEvent]]:
            if not sale.remove_item(command.item_id, now=now):
                return _not_found(f"Item with ID {command.item_id} not found in sale {sale.sale_id}."), []
            return sale, [SaleModifiedEvent(sale.sale_id, occurred_at=now)]

        return self._mutate(command.sale_id, "Cannot remove items from a cancelled sale.", mutation)

    def update_sale_details(self, command: UpdateSaleDetailsCommand) -> Result:
        def mutation(sale: Sale, now: datetime) -> Tuple[Any, List[SaleEvent]]:
            sale.update_details(command.customer_name, command.branch_name, now=now)
            return sale, [SaleModifiedEvent(sale.sale_id, occurred_at=now)]

        return self._mutate(command.sale_id, "Cannot update details of a cancelled sale.", mutation)

    def cancel_sale(self, command: CancelSaleCommand) -> Result:
        def mutation(sale: Sale, now: datetime) -> Tuple[Any, List[SaleEvent]]:
            cancelled_items = sale.cancel(now=now)
            events: List[SaleEvent] = [SaleCancelledEvent(sale.sale_id, occurred_at=now)]
            events.extend(
                ItemCancelledEvent(sale.sale_id, item.item_id, occurred_at=now)
                for item in cancelled_items
            )
            return sale, events

        return self._mutate(command.sale_id, "Sale is already cancelled.", mutation)

    def get_sale(self, sale_id: UUID) -> Result:
        sale = self._repository.get_by_id(sale_id)
        if sale is None:
            return _not_found(f"Sale with ID {sale_id} not found.")
        return Ok(sale)

    def get_item(self, sale_id: UUID, item_id: UUID) -> Result:
        sale = self._repository.get_by_id(sale_id)
        if sale is None:
            return _not_found(f"Sale with ID {sale_id} not found.")
        item = sale.find_item(item_id)
        if item is None:
            return _not_found(f"Item with ID {item_id} not found in sale {sale_id}.")
        return Ok(item)

    def list_sales(self, query: ListSalesQuery) -> Result:
        if query.page_size is None:
            query = replace(query, page_size=self._default_page_size)
        violations = validate_list_query(query)
        if violations:
            return Err.validation(violations)

        sales = self._repository.list(
            query.page_number,
            query.page_size,
            order_by=query.order_by,
            filter_expr=query.filter_expr,
        )
        total = self._repository.count(filter_expr=query.filter_expr)
        return Ok(
            SalePage(
                items=sales,
                total_count=total,
                page_number=query.page_number,
                page_size=query.page_size,
            )
        )


__all__ = [
    "SaleItemInput",
    "CreateSaleCommand",
    "AddItemCommand",
    "RemoveItemCommand",
    "UpdateSaleDetailsCommand",
    "CancelSaleCommand",
    "DEFAULT_PAGE_SIZE",
    "ListSalesQuery",
    "SalePage",
    "validate_item_input",
    "validate_list_query",
    "SaleService",
]
