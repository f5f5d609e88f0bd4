"""Prometheus counters for the dashboard cache.

Labels are limited to the key *kind* (admin, university, batch, student) so
per-student keys never explode cardinality.
"""

from __future__ import annotations

from prometheus_client import Counter

from leetdash.services.cache import keys

CACHE_LOOKUPS_TOTAL = Counter(
    "dashboard_cache_lookups_total",
    "Dashboard cache reads through get_data_with_cache by result.",
    labelnames=("kind", "result"),
)

CACHE_REFRESHES_TOTAL = Counter(
    "dashboard_cache_refreshes_total",
    "Background and warm-up producer runs by outcome.",
    labelnames=("kind", "trigger", "outcome"),
)

CACHE_STORE_ERRORS_TOTAL = Counter(
    "dashboard_cache_store_errors_total",
    "Storage faults swallowed by the cache service.",
    labelnames=("operation",),
)

CACHE_EXPIRED_REMOVED_TOTAL = Counter(
    "dashboard_cache_expired_removed_total",
    "Entries removed by the expiry sweep.",
)


def key_kind(cache_key: str) -> str:
    if cache_key.startswith(keys.STUDENT_PREFIX):
        return "student"
    if cache_key.startswith(keys.BATCH_PREFIX):
        return "batch"
    if cache_key in {keys.ADMIN, keys.UNIVERSITY}:
        return cache_key
    return "other"


def record_lookup(cache_key: str, result: str) -> None:
    CACHE_LOOKUPS_TOTAL.labels(kind=key_kind(cache_key), result=result).inc()


def record_refresh(cache_key: str, *, trigger: str, outcome: str) -> None:
    CACHE_REFRESHES_TOTAL.labels(kind=key_kind(cache_key), trigger=trigger, outcome=outcome).inc()


def record_store_error(operation: str) -> None:
    CACHE_STORE_ERRORS_TOTAL.labels(operation=operation).inc()


def record_expired_removed(count: int) -> None:
    if count > 0:
        CACHE_EXPIRED_REMOVED_TOTAL.inc(count)


__all__ = [
    "record_lookup",
    "record_refresh",
    "record_store_error",
    "record_expired_removed",
    "key_kind",
]
