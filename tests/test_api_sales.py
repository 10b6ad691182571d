"""
Tests for `api/routers/sales.py`.

Runs the FastAPI app in-process with an in-memory sale service.

Covers contract rules:
- Error kinds map to HTTP status: not_found 404, domain_validation 400,
  invalid_state_transition 400, concurrency_conflict 409.
- Validation errors return every violated rule id.
- List endpoint accepts page_number, page_size, order_by and filter.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_sale_service
from api.main import app
from repositories.memory_sale_repository import InMemorySaleRepository
from services.sale_service import SaleService


@pytest.fixture
def client() -> Iterator[TestClient]:
    service = SaleService(InMemorySaleRepository())
    app.dependency_overrides[get_sale_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "sale_number": "S-0001",
        "sale_date": "2025-01-01T12:00:00Z",
        "customer_id": "C-1",
        "customer_name": "Test Customer",
        "branch_id": "B-1",
        "branch_name": "Downtown",
        "items": [
            {"product_id": "P-1", "product_name": "Pilsen", "quantity": 5, "unit_price": "10.00"},
        ],
    }
    payload.update(overrides)
    return payload


def _create(client: TestClient, **overrides: Any) -> Dict[str, Any]:
    response = client.post("/api/v1/sales", json=_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


def test_health_and_root(client: TestClient) -> None:
    """Verify the informational endpoints respond."""

    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/").json()["health"] == "/health"


def test_create_and_get_sale(client: TestClient) -> None:
    """Verify a created sale can be fetched with its discounted totals."""

    created = _create(client)

    assert created["status"] == "Active"
    assert Decimal(created["total_amount"]) == Decimal("45")
    assert Decimal(created["items"][0]["discount"]) == Decimal("5")
    assert created["version"] == 0

    fetched = client.get(f"/api/v1/sales/{created['sale_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["sale_number"] == "S-0001"


def test_create_invalid_sale_returns_all_violations(client: TestClient) -> None:
    """Verify validation failures are 400 with every rule id."""

    response = client.post(
        "/api/v1/sales",
        json=_payload(
            sale_number="",
            items=[{"product_id": "P-1", "product_name": "Pilsen", "quantity": 21, "unit_price": "10"}],
        ),
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["kind"] == "domain_validation"
    assert [e["rule_id"] for e in detail["errors"]] == [
        "items[0].quantity.range",
        "sale_number.required",
        "items.required",
    ]


def test_unknown_sale_is_404(client: TestClient) -> None:
    """Verify missing sales and items return 404."""

    assert client.get(f"/api/v1/sales/{uuid4()}").status_code == 404
    created = _create(client)
    response = client.get(f"/api/v1/sales/{created['sale_id']}/items/{uuid4()}")
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "not_found"


def test_add_get_and_remove_item(client: TestClient) -> None:
    """Verify the item endpoints round-trip through the sale."""

    created = _create(client)
    sale_id = created["sale_id"]

    added = client.post(
        f"/api/v1/sales/{sale_id}/items",
        json={"product_id": "P-2", "product_name": "Lager", "quantity": 10, "unit_price": 2},
    )
    assert added.status_code == 201
    item = added.json()
    assert Decimal(item["total_amount"]) == Decimal("16")

    fetched = client.get(f"/api/v1/sales/{sale_id}/items/{item['item_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["product_id"] == "P-2"

    removed = client.delete(f"/api/v1/sales/{sale_id}/items/{item['item_id']}")
    assert removed.status_code == 204

    sale = client.get(f"/api/v1/sales/{sale_id}").json()
    assert Decimal(sale["total_amount"]) == Decimal("45")
    assert sale["version"] == 2


def test_update_details(client: TestClient) -> None:
    """Verify PUT changes customer and branch names."""

    created = _create(client)

    response = client.put(
        f"/api/v1/sales/{created['sale_id']}",
        json={"customer_name": "Renamed", "branch_name": "Uptown"},
    )

    assert response.status_code == 200
    assert response.json()["customer_name"] == "Renamed"
    assert response.json()["branch_name"] == "Uptown"


def test_cancel_then_modify_is_400(client: TestClient) -> None:
    """Verify cancellation succeeds once and blocks later changes."""

    created = _create(client)
    sale_id = created["sale_id"]

    cancelled = client.post(f"/api/v1/sales/{sale_id}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "Cancelled"
    assert Decimal(cancelled.json()["total_amount"]) == Decimal("0")

    again = client.post(f"/api/v1/sales/{sale_id}/cancel")
    assert again.status_code == 400
    assert again.json()["detail"]["kind"] == "invalid_state_transition"

    add = client.post(
        f"/api/v1/sales/{sale_id}/items",
        json={"product_id": "P-2", "product_name": "Lager", "quantity": 1, "unit_price": "1"},
    )
    assert add.status_code == 400


def test_list_sales_with_filter_order_and_paging(client: TestClient) -> None:
    """Verify list query parameters reach the repository."""

    _create(client, sale_number="S-1", customer_name="Test Alpha")
    _create(
        client,
        sale_number="S-2",
        customer_name="Testing Co",
        items=[{"product_id": "P-1", "product_name": "Pilsen", "quantity": 10, "unit_price": "10"}],
    )
    _create(client, sale_number="S-3", customer_name="Other")

    response = client.get(
        "/api/v1/sales",
        params={"filter": "CustomerName=Test*&_minTotalAmount=50", "order_by": "SaleNumber desc"},
    )
    assert response.status_code == 200
    body = response.json()
    assert [s["sale_number"] for s in body["items"]] == ["S-2"]
    assert body["total_count"] == 1

    paged = client.get("/api/v1/sales", params={"page_number": 2, "page_size": 2, "order_by": "SaleNumber"})
    assert [s["sale_number"] for s in paged.json()["items"]] == ["S-3"]
    assert paged.json()["total_pages"] == 2


def test_list_sales_rejects_bad_page_size(client: TestClient) -> None:
    """Verify page sizes outside 1..100 are 400."""

    response = client.get("/api/v1/sales", params={"page_size": 500})

    assert response.status_code == 400
    assert response.json()["detail"]["errors"][0]["rule_id"] == "page_size.range"


def test_list_sales_with_date_outside_utc_range_is_not_a_server_error(client: TestClient) -> None:
    """Verify a range date that overflows in UTC filters to nothing instead of failing."""

    _create(client)

    response = client.get("/api/v1/sales", params={"filter": "_minSaleDate=0001-01-01T00:00:00+05:00"})

    assert response.status_code == 200
    assert response.json()["total_count"] == 0


def test_create_sale_with_date_outside_utc_range_is_400(client: TestClient) -> None:
    """Verify a sale date with no UTC equivalent is a validation error."""

    response = client.post("/api/v1/sales", json=_payload(sale_date="0001-01-01T00:00:00+05:00"))

    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "domain_validation"


def test_list_sales_default_page_size_comes_from_service() -> None:
    """Verify omitting page_size uses the service default page size."""

    service = SaleService(InMemorySaleRepository(), default_page_size=2)
    app.dependency_overrides[get_sale_service] = lambda: service
    try:
        client = TestClient(app)
        for number in ("S-1", "S-2", "S-3"):
            _create(client, sale_number=number)

        body = client.get("/api/v1/sales").json()
    finally:
        app.dependency_overrides.clear()

    assert body["page_size"] == 2
    assert len(body["items"]) == 2
    assert body["total_pages"] == 2


def test_concurrency_conflict_is_409(client: TestClient) -> None:
    """Verify a stale write maps to 409."""

    class ConflictingService(SaleService):
        def update_sale_details(self, command):  # type: ignore[override]
            from domain.errors import ConcurrencyConflict
            from domain.result import Err

            return Err.from_exception(ConcurrencyConflict(command.sale_id, 0, 1))

    app.dependency_overrides[get_sale_service] = lambda: ConflictingService(InMemorySaleRepository())

    response = client.put(f"/api/v1/sales/{uuid4()}", json={"customer_name": "A", "branch_name": "B"})

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "concurrency_conflict"
