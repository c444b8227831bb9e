"""
core/clock.py -- Wall-clock source shared by the auth components.

Every time-dependent component takes a `clock` callable instead of calling
datetime.now() inline, so tests can drive window expiry and lockout expiry
with a fake clock rather than sleeping.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp written by the store. Empty values map to None.

    Naive values are treated as UTC; the store only ever writes aware UTC
    timestamps, but rows written by hand during provisioning may not be.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
