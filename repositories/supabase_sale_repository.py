"""
Sale repository (Supabase persistence).

Persists Sale aggregates in two tables:
- sales: one row per sale, including the denormalized total_amount and the
  integer `version` concurrency token
- sale_items: one row per line item, keyed by item_id, with a sale_id column

Parsed filter predicates and order clauses are compiled to PostgREST query
builder calls, so filtering, ordering and paging run in the database.
This module does not enforce business rules; callers validate first.

update() is not a single transaction. It claims the next version first, then
writes items, and writes the sale row (details and total_amount) last. If an
item call fails, the sale row keeps its previous details and total under the
bumped version and the item rows may be partially written; the raised
RuntimeError tells the caller to reload and retry.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from config import get_settings
from domain.errors import ConcurrencyConflict, SaleNotFound
from domain.filter_query import FilterOperator, Predicate, parse_filter
from domain.line_item import LineItem
from domain.ordering import OrderClause, parse_order
from domain.sale import SALE_QUERY_FIELDS, Sale, SaleStatus, resolve_sale_field
from domain.time import require_utc_timestamp
from repositories.sale_repository import ItemDiff, diff_items, page_offset

logger = logging.getLogger(__name__)


def _to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_datetime(value: Any) -> Optional[datetime]:
    return _parse_utc_datetime(value) if value else None


def _filter_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def apply_predicates(query: Any, predicates: Sequence[Predicate]) -> Any:
    """Compile AND-combined predicates onto a PostgREST query builder."""

    for predicate in predicates:
        column = resolve_sale_field(predicate.field)
        if column is None:
            logger.warning(
                f"Ignoring filter on unknown field '{predicate.field}'",
                extra={"filter_field": predicate.field},
            )
            continue

        value = _filter_value(predicate.value)
        if predicate.operator is FilterOperator.EQ:
            query = query.eq(column, value)
        elif predicate.operator is FilterOperator.CONTAINS:
            query = query.like(column, f"%{value}%")
        elif predicate.operator is FilterOperator.STARTS_WITH:
            query = query.like(column, f"{value}%")
        elif predicate.operator is FilterOperator.ENDS_WITH:
            query = query.like(column, f"%{value}")
        elif predicate.operator is FilterOperator.GTE:
            query = query.gte(column, value)
        else:
            query = query.lte(column, value)
    return query


def apply_order(query: Any, clauses: Sequence[OrderClause]) -> Any:
    for clause in clauses:
        column = resolve_sale_field(clause.field)
        if column is not None:
            query = query.order(column, desc=clause.descending)
    return query


def _item_to_row(item: LineItem) -> Dict[str, Any]:
    return {
        "item_id": str(item.item_id),
        "sale_id": str(item.sale_id),
        "product_id": item.product_id,
        "product_name": item.product_name,
        "quantity": item.quantity,
        "unit_price": str(item.unit_price),
        "discount": str(item.discount),
        "total_amount": str(item.total_amount),
        "is_cancelled": item.is_cancelled,
        "created_at": _to_iso_utc(item.created_at, name="created_at"),
        "updated_at": _to_iso_utc(item.updated_at, name="updated_at") if item.updated_at else None,
    }


def _row_to_item(row: Mapping[str, Any]) -> LineItem:
    return LineItem(
        item_id=UUID(str(row["item_id"])),
        sale_id=UUID(str(row["sale_id"])),
        product_id=str(row["product_id"]),
        product_name=str(row["product_name"]),
        quantity=int(row["quantity"]),
        unit_price=Decimal(str(row["unit_price"])),
        discount=Decimal(str(row["discount"])),
        total_amount=Decimal(str(row["total_amount"])),
        is_cancelled=bool(row.get("is_cancelled", False)),
        created_at=_parse_utc_datetime(row["created_at"]),
        updated_at=_optional_datetime(row.get("updated_at")),
    )


def _sale_to_row(sale: Sale) -> Dict[str, Any]:
    return {
        "sale_id": str(sale.sale_id),
        "sale_number": sale.sale_number,
        "sale_date": _to_iso_utc(sale.sale_date, name="sale_date"),
        "customer_id": sale.customer_id,
        "customer_name": sale.customer_name,
        "branch_id": sale.branch_id,
        "branch_name": sale.branch_name,
        "status": sale.status.value,
        "total_amount": str(sale.total_amount),
        "created_at": _to_iso_utc(sale.created_at, name="created_at"),
        "updated_at": _to_iso_utc(sale.updated_at, name="updated_at") if sale.updated_at else None,
        "version": sale.version,
    }


def _row_to_sale(row: Mapping[str, Any], item_rows: Sequence[Mapping[str, Any]]) -> Sale:
    return Sale(
        sale_id=UUID(str(row["sale_id"])),
        sale_number=str(row["sale_number"]),
        sale_date=_parse_utc_datetime(row["sale_date"]),
        customer_id=str(row["customer_id"]),
        customer_name=str(row["customer_name"]),
        branch_id=str(row["branch_id"]),
        branch_name=str(row["branch_name"]),
        status=SaleStatus(str(row["status"])),
        created_at=_parse_utc_datetime(row["created_at"]),
        updated_at=_optional_datetime(row.get("updated_at")),
        version=int(row.get("version") or 0),
        _items=[_row_to_item(item_row) for item_row in item_rows],
    )


def _raise_on_error(response: Any, action: str) -> None:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")


class SupabaseSaleRepository:
    """SaleRepository backed by Supabase (PostgREST)."""

    def __init__(
        self,
        client: Any = None,
        *,
        sales_table: Optional[str] = None,
        items_table: Optional[str] = None,
    ) -> None:
        if client is None:
            from repositories.client import get_supabase_client

            client = get_supabase_client()
        settings = get_settings()
        self._client = client
        self._sales_table = sales_table or settings.sales_table
        self._items_table = items_table or settings.sale_items_table

    def _load_items(self, sale_ids: Sequence[str]) -> Dict[str, List[Mapping[str, Any]]]:
        grouped: Dict[str, List[Mapping[str, Any]]] = defaultdict(list)
        if not sale_ids:
            return grouped

        response = (
            self._client.table(self._items_table)
            .select("*")
            .in_("sale_id", list(sale_ids))
            .order("created_at")
            .execute()
        )
        _raise_on_error(response, "load sale items")
        for row in getattr(response, "data", None) or []:
            grouped[str(row["sale_id"])].append(row)
        return grouped

    def add(self, sale: Sale) -> None:
        response = self._client.table(self._sales_table).insert(_sale_to_row(sale)).execute()
        _raise_on_error(response, "add sale")

        if sale.items:
            response = (
                self._client.table(self._items_table)
                .insert([_item_to_row(item) for item in sale.items])
                .execute()
            )
            _raise_on_error(response, "add sale items")

    def get_by_id(self, sale_id: UUID) -> Optional[Sale]:
        response = (
            self._client.table(self._sales_table)
            .select("*")
            .eq("sale_id", str(sale_id))
            .limit(1)
            .execute()
        )
        _raise_on_error(response, "get sale")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None

        items = self._load_items([str(sale_id)])
        return _row_to_sale(rows[0], items.get(str(sale_id), []))

    def update(self, sale: Sale, expected_version: Optional[int] = None) -> ItemDiff:
        """
        Claim the next version, write the items, then write the sale row.

        The version claim detects conflicts; the final sale row write is
        conditional on the claimed version.
        """

        if expected_version is None:
            expected_version = sale.version
        new_version = expected_version + 1

        response = (
            self._client.table(self._sales_table)
            .update({"version": new_version})
            .eq("sale_id", str(sale.sale_id))
            .eq("version", expected_version)
            .execute()
        )
        _raise_on_error(response, "claim sale version")

        if not (getattr(response, "data", None) or []):
            current = (
                self._client.table(self._sales_table)
                .select("version")
                .eq("sale_id", str(sale.sale_id))
                .limit(1)
                .execute()
            )
            _raise_on_error(current, "read sale version")
            current_rows = getattr(current, "data", None) or []
            if not current_rows:
                raise SaleNotFound(sale.sale_id)
            stored_version = int(current_rows[0].get("version") or 0)
            logger.warning(
                f"Version conflict updating sale {sale.sale_id}",
                extra={
                    "sale_id": str(sale.sale_id),
                    "expected_version": expected_version,
                    "stored_version": stored_version,
                },
            )
            raise ConcurrencyConflict(sale.sale_id, expected_version, stored_version)

        stored_items = self._load_items([str(sale.sale_id)]).get(str(sale.sale_id), [])
        diff = diff_items((UUID(str(r["item_id"])) for r in stored_items), sale.items)

        if diff.deleted:
            response = (
                self._client.table(self._items_table)
                .delete()
                .in_("item_id", [str(item_id) for item_id in diff.deleted])
                .execute()
            )
            _raise_on_error(response, "delete sale items")

        if sale.items:
            response = (
                self._client.table(self._items_table)
                .upsert([_item_to_row(item) for item in sale.items])
                .execute()
            )
            _raise_on_error(response, "upsert sale items")

        row = _sale_to_row(sale)
        row["version"] = new_version
        response = (
            self._client.table(self._sales_table)
            .update(row)
            .eq("sale_id", str(sale.sale_id))
            .eq("version", new_version)
            .execute()
        )
        _raise_on_error(response, "update sale")

        sale.version = new_version
        return diff

    def list(
        self,
        page_number: int,
        page_size: int,
        order_by: Optional[str] = None,
        filter_expr: Optional[str] = None,
    ) -> List[Sale]:
        offset = page_offset(page_number, page_size)
        query = self._client.table(self._sales_table).select("*")
        query = apply_predicates(query, parse_filter(filter_expr))
        query = apply_order(query, parse_order(order_by, allowed_fields=SALE_QUERY_FIELDS))
        response = query.range(offset, offset + page_size - 1).execute()
        _raise_on_error(response, "list sales")

        rows = getattr(response, "data", None) or []
        items = self._load_items([str(row["sale_id"]) for row in rows])
        return [_row_to_sale(row, items.get(str(row["sale_id"]), [])) for row in rows]

    def count(self, filter_expr: Optional[str] = None) -> int:
        query = self._client.table(self._sales_table).select("sale_id", count="exact")
        response = apply_predicates(query, parse_filter(filter_expr)).execute()
        _raise_on_error(response, "count sales")
        return int(getattr(response, "count", None) or 0)


__all__ = ["SupabaseSaleRepository", "apply_predicates", "apply_order"]
