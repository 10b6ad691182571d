"""
Tests for `services/sale_service.py`.

Covers contract rules:
- Every handler returns Ok or Err; Err carries its kind and all violations.
- Requested items are validated before the aggregate is built (price >= 0.01).
- Commands on a cancelled sale are rejected before any state changes.
- Failed validation persists nothing.
- Stale writes surface as concurrency_conflict.
- Events are published only after a successful write.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List
from uuid import UUID, uuid4

import pytest

from domain.errors import ErrorKind
from domain.events import (
    ItemCancelledEvent,
    SaleCancelledEvent,
    SaleCreatedEvent,
    SaleEvent,
    SaleModifiedEvent,
)
from domain.result import Err, Ok
from domain.sale import Sale, SaleStatus
from repositories.memory_sale_repository import InMemorySaleRepository
from services.sale_service import (
    AddItemCommand,
    CancelSaleCommand,
    CreateSaleCommand,
    ListSalesQuery,
    RemoveItemCommand,
    SaleItemInput,
    SaleService,
    UpdateSaleDetailsCommand,
    validate_item_input,
)

NOW = datetime(2025, 1, 10, 12, 0, 0, tzinfo=timezone.utc)


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: List[SaleEvent] = []

    def publish(self, event: SaleEvent) -> None:
        self.events.append(event)


class InterleavingRepository(InMemorySaleRepository):
    """Commits a competing write just before the next update() call."""

    def __init__(self) -> None:
        super().__init__()
        self.interleave = False

    def update(self, sale: Sale):
        if self.interleave:
            self.interleave = False
            other = self.get_by_id(sale.sale_id)
            assert other is not None
            other.update_details("Competing", "Competing", now=NOW)
            super().update(other)
        return super().update(sale)


def _item(quantity: int = 5, price: str = "10", product_id: str = "P-1") -> SaleItemInput:
    return SaleItemInput(product_id=product_id, product_name="Pilsen", quantity=quantity, unit_price=Decimal(price))


def _command(*items: SaleItemInput, number: str = "S-0001", sale_date: datetime | None = None) -> CreateSaleCommand:
    return CreateSaleCommand(
        sale_number=number,
        sale_date=sale_date or NOW - timedelta(days=1),
        customer_id="C-1",
        customer_name="Test Customer",
        branch_id="B-1",
        branch_name="Downtown",
        items=list(items),
    )


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def repository() -> InterleavingRepository:
    return InterleavingRepository()


@pytest.fixture
def service(repository: InterleavingRepository, publisher: RecordingPublisher) -> SaleService:
    return SaleService(repository, publisher=publisher, clock=lambda: NOW)


def _create(service: SaleService, *items: SaleItemInput, number: str = "S-0001") -> Sale:
    result = service.create_sale(_command(*(items or (_item(),)), number=number))
    assert isinstance(result, Ok)
    return result.value


def _rule_ids(result: object) -> List[str]:
    assert isinstance(result, Err)
    return [v.rule_id for v in result.violations]


def test_create_sale_applies_discounts_and_publishes(service: SaleService, repository: InMemorySaleRepository, publisher: RecordingPublisher) -> None:
    """Verify a valid sale is stored with tiered totals and announced."""

    sale = _create(service, _item(5, "10"), _item(10, "10", "P-2"), _item(2, "3.50", "P-3"))

    assert sale.total_amount == Decimal("132")
    assert sale.status is SaleStatus.ACTIVE
    assert sale.created_at == NOW
    stored = repository.get_by_id(sale.sale_id)
    assert stored is not None and len(stored.items) == 3
    assert publisher.events == [SaleCreatedEvent(sale.sale_id, occurred_at=NOW)]


def test_create_sale_without_items_is_rejected(service: SaleService, repository: InMemorySaleRepository, publisher: RecordingPublisher) -> None:
    """Verify an empty sale fails validation and nothing is stored."""

    result = service.create_sale(_command())

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.DOMAIN_VALIDATION
    assert _rule_ids(result) == ["items.required"]
    assert repository.count() == 0
    assert publisher.events == []


def test_create_sale_reports_every_item_violation(service: SaleService) -> None:
    """Verify all bad items and header problems are reported together."""

    result = service.create_sale(
        _command(
            _item(21, "10"),
            SaleItemInput(product_id="", product_name=" ", quantity=1, unit_price=Decimal("0")),
            _item(1, "1"),
            sale_date=NOW + timedelta(hours=1),
        )
    )

    assert _rule_ids(result) == [
        "items[0].quantity.range",
        "items[1].product_id.required",
        "items[1].product_name.required",
        "items[1].unit_price.min",
        "sale_date.not_future",
    ]


def test_validate_item_input_minimum_price() -> None:
    """Verify unit prices below 0.01 or not numeric are rejected."""

    assert validate_item_input(_item(1, "0.01")) == []
    assert [v.rule_id for v in validate_item_input(_item(1, "0.009"))] == ["unit_price.min"]
    bad = SaleItemInput(product_id="P", product_name="N", quantity=True, unit_price="abc")  # type: ignore[arg-type]
    assert [v.rule_id for v in validate_item_input(bad)] == ["quantity.range", "unit_price.min"]


def test_add_item_updates_total_and_version(service: SaleService, repository: InMemorySaleRepository, publisher: RecordingPublisher) -> None:
    """Verify add_item persists the new item and bumps the version."""

    sale = _create(service)
    result = service.add_item(
        AddItemCommand(sale.sale_id, product_id="P-9", product_name="Stout", quantity=4, unit_price=Decimal("2.50"))
    )

    assert isinstance(result, Ok)
    assert result.value.sale_id == sale.sale_id
    assert result.value.total_amount == Decimal("9")
    stored = repository.get_by_id(sale.sale_id)
    assert stored is not None
    assert stored.total_amount == Decimal("54")
    assert stored.version == 1
    assert publisher.events[-1] == SaleModifiedEvent(sale.sale_id, occurred_at=NOW)


def test_add_item_with_invalid_input_is_rejected(service: SaleService) -> None:
    """Verify add_item validates input before loading the sale."""

    result = service.add_item(
        AddItemCommand(uuid4(), product_id="P", product_name="N", quantity=0, unit_price=Decimal("1"))
    )

    assert _rule_ids(result) == ["quantity.range"]


def test_missing_sale_is_not_found(service: SaleService) -> None:
    """Verify every handler reports not_found for an unknown sale id."""

    missing = uuid4()
    results = [
        service.get_sale(missing),
        service.get_item(missing, uuid4()),
        service.cancel_sale(CancelSaleCommand(missing)),
        service.update_sale_details(UpdateSaleDetailsCommand(missing, "A", "B")),
        service.remove_item(RemoveItemCommand(missing, uuid4())),
        service.add_item(AddItemCommand(missing, "P", "N", 1, Decimal("1"))),
    ]

    for result in results:
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.NOT_FOUND


def test_get_item_returns_item_or_not_found(service: SaleService) -> None:
    """Verify get_item finds items by id within their sale."""

    sale = _create(service)
    item_id = sale.items[0].item_id

    found = service.get_item(sale.sale_id, item_id)
    assert isinstance(found, Ok)
    assert found.value.item_id == item_id

    missing = service.get_item(sale.sale_id, uuid4())
    assert isinstance(missing, Err)
    assert missing.kind is ErrorKind.NOT_FOUND


def test_remove_item(service: SaleService, repository: InMemorySaleRepository) -> None:
    """Verify removing an item persists; removing an unknown item is not_found."""

    sale = _create(service, _item(5, "10"), _item(1, "5", "P-2"))
    removed = sale.items[1].item_id

    result = service.remove_item(RemoveItemCommand(sale.sale_id, removed))
    assert isinstance(result, Ok)
    assert result.value.total_amount == Decimal("45")

    again = service.remove_item(RemoveItemCommand(sale.sale_id, removed))
    assert isinstance(again, Err)
    assert again.kind is ErrorKind.NOT_FOUND

    stored = repository.get_by_id(sale.sale_id)
    assert stored is not None
    assert [item.item_id for item in stored.items] == [sale.items[0].item_id]


def test_removing_last_item_fails_validation_and_persists_nothing(service: SaleService, repository: InMemorySaleRepository) -> None:
    """Verify a sale cannot be left without items."""

    sale = _create(service)

    result = service.remove_item(RemoveItemCommand(sale.sale_id, sale.items[0].item_id))

    assert _rule_ids(result) == ["items.required"]
    stored = repository.get_by_id(sale.sale_id)
    assert stored is not None
    assert len(stored.items) == 1
    assert stored.version == 0


def test_update_sale_details(service: SaleService) -> None:
    """Verify customer and branch names change and blanks are rejected."""

    sale = _create(service)

    result = service.update_sale_details(UpdateSaleDetailsCommand(sale.sale_id, "New Customer", "Uptown"))
    assert isinstance(result, Ok)
    assert (result.value.customer_name, result.value.branch_name) == ("New Customer", "Uptown")

    blank = service.update_sale_details(UpdateSaleDetailsCommand(sale.sale_id, "", "Uptown"))
    assert _rule_ids(blank) == ["customer_name.required"]


def test_cancel_sale_cascades_and_publishes(service: SaleService, publisher: RecordingPublisher) -> None:
    """Verify cancellation zeroes the total and emits one event per cancelled item."""

    sale = _create(service, _item(5, "10"), _item(1, "5", "P-2"))
    publisher.events.clear()

    result = service.cancel_sale(CancelSaleCommand(sale.sale_id))

    assert isinstance(result, Ok)
    assert result.value.status is SaleStatus.CANCELLED
    assert result.value.total_amount == Decimal("0")
    assert publisher.events == [
        SaleCancelledEvent(sale.sale_id, occurred_at=NOW),
        ItemCancelledEvent(sale.sale_id, sale.items[0].item_id, occurred_at=NOW),
        ItemCancelledEvent(sale.sale_id, sale.items[1].item_id, occurred_at=NOW),
    ]


def test_commands_on_cancelled_sale_are_invalid_transitions(service: SaleService, repository: InMemorySaleRepository, publisher: RecordingPublisher) -> None:
    """Verify a cancelled sale rejects every command without changing storage."""

    sale = _create(service)
    service.cancel_sale(CancelSaleCommand(sale.sale_id))
    version = repository.get_by_id(sale.sale_id).version  # type: ignore[union-attr]
    published = len(publisher.events)

    results = [
        service.cancel_sale(CancelSaleCommand(sale.sale_id)),
        service.add_item(AddItemCommand(sale.sale_id, "P", "N", 1, Decimal("1"))),
        service.remove_item(RemoveItemCommand(sale.sale_id, sale.items[0].item_id)),
        service.update_sale_details(UpdateSaleDetailsCommand(sale.sale_id, "A", "B")),
    ]

    for result in results:
        assert isinstance(result, Err)
        assert result.kind is ErrorKind.INVALID_STATE_TRANSITION
    assert repository.get_by_id(sale.sale_id).version == version  # type: ignore[union-attr]
    assert len(publisher.events) == published


def test_stale_write_is_concurrency_conflict(service: SaleService, repository: InterleavingRepository, publisher: RecordingPublisher) -> None:
    """Verify a write that lost the race is reported, and the winner's change survives."""

    sale = _create(service)
    publisher.events.clear()
    repository.interleave = True

    result = service.update_sale_details(UpdateSaleDetailsCommand(sale.sale_id, "Loser", "Loser"))

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.CONCURRENCY_CONFLICT
    stored = repository.get_by_id(sale.sale_id)
    assert stored is not None
    assert stored.customer_name == "Competing"
    assert publisher.events == []


def test_concurrent_commands_on_one_sale_are_serialized(service: SaleService, repository: InMemorySaleRepository) -> None:
    """Verify parallel add_item calls on the same sale all succeed in turn."""

    sale = _create(service, _item(1, "1"))
    results: List[object] = []
    lock = threading.Lock()

    def worker(index: int) -> None:
        result = service.add_item(AddItemCommand(sale.sale_id, f"P-{index}", "Item", 1, Decimal("1")))
        with lock:
            results.append(result)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert all(isinstance(result, Ok) for result in results)
    stored = repository.get_by_id(sale.sale_id)
    assert stored is not None
    assert len(stored.items) == 11
    assert stored.version == 10
    assert stored.total_amount == Decimal("11")


def test_list_sales_pages_and_filters(service: SaleService) -> None:
    """Verify list_sales returns the page, total count and page count."""

    _create(service, _item(5, "10"), number="S-1")
    _create(service, _item(10, "10"), number="S-2")
    _create(service, _item(1, "10"), number="S-3")

    result = service.list_sales(ListSalesQuery(page_number=1, page_size=2, order_by="SaleNumber asc"))
    assert isinstance(result, Ok)
    page = result.value
    assert [s.sale_number for s in page.items] == ["S-1", "S-2"]
    assert (page.total_count, page.total_pages) == (3, 2)

    filtered = service.list_sales(ListSalesQuery(filter_expr="_minTotalAmount=40&SaleNumber=S-*"))
    assert isinstance(filtered, Ok)
    assert sorted(s.sale_number for s in filtered.value.items) == ["S-1", "S-2"]
    assert filtered.value.total_count == 2


@pytest.mark.parametrize(
    ("page_number", "page_size", "rule_id"),
    [(0, 10, "page_number.min"), (1, 0, "page_size.range"), (1, 101, "page_size.range")],
)
def test_list_sales_rejects_bad_paging(service: SaleService, page_number: int, page_size: int, rule_id: str) -> None:
    """Verify paging arguments are validated."""

    result = service.list_sales(ListSalesQuery(page_number=page_number, page_size=page_size))

    assert _rule_ids(result) == [rule_id]


def test_default_publisher_logs_events(repository: InMemorySaleRepository, caplog: pytest.LogCaptureFixture) -> None:
    """Verify the logging publisher records each event."""

    service = SaleService(repository, clock=lambda: NOW)
    with caplog.at_level("INFO", logger="services.event_publisher"):
        sale = _create(service)

    assert f"[Event] SaleCreatedEvent published for Sale ID: {sale.sale_id}" in caplog.messages


def test_create_sale_with_date_outside_utc_range_is_rejected(service: SaleService, repository: InMemorySaleRepository, publisher: RecordingPublisher) -> None:
    """Verify a sale date with no UTC equivalent becomes a validation error, not an exception."""

    edge = datetime(1, 1, 1, 0, 0, 0, tzinfo=timezone(timedelta(hours=5)))

    result = service.create_sale(_command(_item(), sale_date=edge))

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.DOMAIN_VALIDATION
    assert repository.count() == 0
    assert publisher.events == []


def test_list_sales_uses_service_default_page_size(repository: InMemorySaleRepository) -> None:
    """Verify a query without page_size gets the page size the service was built with."""

    service = SaleService(repository, clock=lambda: NOW, default_page_size=2)
    for number in ("S-1", "S-2", "S-3"):
        _create(service, number=number)

    result = service.list_sales(ListSalesQuery())

    assert isinstance(result, Ok)
    assert result.value.page_size == 2
    assert len(result.value.items) == 2
    assert result.value.total_pages == 2
