"""
Sale event publishing.

Services hand events to an EventPublisher after the change is persisted.
The default publisher writes each event to the log; other transports
(message bus, webhooks) plug in by implementing `publish`.
"""

from __future__ import annotations

import logging
from typing import Protocol

from domain.events import SaleEvent

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    def publish(self, event: SaleEvent) -> None:
        ...


class LoggingEventPublisher:
    def publish(self, event: SaleEvent) -> None:
        extra = {
            "event": event.name,
            "sale_id": str(event.sale_id),
            "occurred_at": event.occurred_at.isoformat(),
        }
        item_id = getattr(event, "item_id", None)
        if item_id is not None:
            extra["item_id"] = str(item_id)
        logger.info(f"[Event] {event.name} published for Sale ID: {event.sale_id}", extra=extra)


__all__ = ["EventPublisher", "LoggingEventPublisher"]
