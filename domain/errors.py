"""
Domain: error taxonomy for sales.

Every failure the domain can report belongs to exactly one kind:
- not_found: a sale or item is absent
- domain_validation: one or more named rules are violated
- invalid_state_transition: an operation against a cancelled sale or item,
  or a double cancellation
- concurrency_conflict: a stale version token on update

Rule violations raised by entities are ValueError subclasses, matching the
rest of the domain model. Services translate all of these into Result values.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    DOMAIN_VALIDATION = "domain_validation"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


class SaleDomainError(ValueError):
    """Base class for rule violations raised by sales entities."""

    kind: ErrorKind = ErrorKind.DOMAIN_VALIDATION

    def __init__(self, message: str, details: Optional[Mapping[str, Any]] = None):
        self.message = message
        self.details = dict(details or {})
        super().__init__(message)


class InvalidQuantity(SaleDomainError):
    """Raised when a quantity falls outside [1, 20]."""


class InvalidAmount(SaleDomainError):
    """Raised when a monetary amount is negative or not a number."""


class ItemBoundElsewhere(SaleDomainError):
    """Raised when a line item already belongs to a different sale."""


class DuplicateItem(SaleDomainError):
    """Raised when an item id is already part of the sale."""


class InvalidSaleDate(SaleDomainError):
    """Raised when a sale date has no UTC equivalent."""


class ItemAlreadyCancelled(SaleDomainError):
    """Raised when mutating a cancelled line item."""

    kind = ErrorKind.INVALID_STATE_TRANSITION


class AlreadyCancelled(SaleDomainError):
    """Raised when cancelling a sale or line item twice."""

    kind = ErrorKind.INVALID_STATE_TRANSITION


class SaleCancelled(SaleDomainError):
    """Raised when an operation targets a cancelled sale."""

    kind = ErrorKind.INVALID_STATE_TRANSITION


class SaleNotFound(LookupError):
    """Raised by repositories when a sale does not exist in storage."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, sale_id: Any):
        self.sale_id = sale_id
        super().__init__(f"Sale with ID {sale_id} not found.")


class ConcurrencyConflict(RuntimeError):
    """Raised when the stored version token differs from the one the caller read."""

    kind = ErrorKind.CONCURRENCY_CONFLICT

    def __init__(self, sale_id: Any, expected_version: int, actual_version: Optional[int]):
        self.sale_id = sale_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Sale {sale_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})."
        )


__all__ = [
    "ErrorKind",
    "SaleDomainError",
    "InvalidQuantity",
    "InvalidAmount",
    "ItemBoundElsewhere",
    "DuplicateItem",
    "InvalidSaleDate",
    "ItemAlreadyCancelled",
    "AlreadyCancelled",
    "SaleCancelled",
    "SaleNotFound",
    "ConcurrencyConflict",
]
