"""Human-readable freshness badge for data shown from the mirror."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

FAST_THRESHOLD = 5 * 60.0
CACHED_THRESHOLD = 15 * 60.0


@dataclass(frozen=True)
class CacheBadge:
    variant: str
    label: str
    tooltip: str


def format_cache_age(age_seconds: float) -> str:
    minutes, seconds = divmod(int(age_seconds), 60)
    if minutes > 0:
        return f"{minutes}m {seconds}s ago"
    return f"{seconds}s ago"


def describe_cache_age(is_from_cache: bool, cache_age: Optional[float] = None) -> Optional[CacheBadge]:
    """Badge for a snapshot of the given age (seconds); ``None`` for live data."""
    if not is_from_cache:
        return None
    if not cache_age:
        return CacheBadge("secondary", "Cached", "Showing cached data for instant loading")

    age_text = format_cache_age(cache_age)
    if cache_age < FAST_THRESHOLD:
        return CacheBadge("default", "Fast", f"Fresh cached data ({age_text})")
    if cache_age < CACHED_THRESHOLD:
        return CacheBadge("secondary", "Cached", f"Cached data ({age_text}) - updating in background")
    return CacheBadge("outline", "Stale", f"Older cached data ({age_text}) - refreshing soon")


__all__ = ["CacheBadge", "describe_cache_age", "format_cache_age"]
