"""
Domain time utilities (pure).

Centralized timestamp helpers shared by the sale aggregate and its line items.

Invariants:
- Every timestamp stored on a domain object is timezone-aware UTC.
- Naive datetimes coming from callers are interpreted as UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""

    return datetime.now(timezone.utc)


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces that a timestamp is UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to UTC, treating naive values as already UTC.

    Raises ValueError when the UTC instant falls outside the datetime range
    (e.g. 0001-01-01T00:00:00+05:00).
    """

    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError as exc:
        raise ValueError(f"{value.isoformat()} is out of range in UTC") from exc
