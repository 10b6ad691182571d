"""
Domain: sale events.

Immutable facts emitted after a sale change has been persisted. Publishing is
handled by services; these records carry no behavior.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from .time import require_utc_timestamp, utc_now


@dataclass(frozen=True, slots=True)
class SaleEvent:
    sale_id: UUID
    occurred_at: datetime = field(default_factory=utc_now, kw_only=True)

    def __post_init__(self) -> None:
        require_utc_timestamp("occurred_at", self.occurred_at)

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True, slots=True)
class SaleCreatedEvent(SaleEvent):
    pass


@dataclass(frozen=True, slots=True)
class SaleModifiedEvent(SaleEvent):
    pass


@dataclass(frozen=True, slots=True)
class SaleCancelledEvent(SaleEvent):
    pass


@dataclass(frozen=True, slots=True)
class ItemCancelledEvent(SaleEvent):
    item_id: UUID


__all__ = [
    "SaleEvent",
    "SaleCreatedEvent",
    "SaleModifiedEvent",
    "SaleCancelledEvent",
    "ItemCancelledEvent",
]
