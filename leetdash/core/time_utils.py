from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: datetime) -> datetime:
    """
    Return a timezone-aware UTC datetime.

    SQLite hands back naive values for ``DateTime(timezone=True)`` columns;
    everything this project writes is UTC, so naive values are tagged as such.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def as_timedelta(value: Union[timedelta, float, int]) -> timedelta:
    """Accept a duration as ``timedelta`` or seconds."""
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=float(value))


__all__ = ["utcnow", "ensure_aware_utc", "as_timedelta"]
