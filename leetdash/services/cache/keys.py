"""Cache key builders for dashboard payloads.

Keys are plain strings stored verbatim in ``dashboard_cache.cache_key``:
``admin``, ``university``, ``batch_<year>`` and ``student_<id>``.
"""

from __future__ import annotations

from typing import Iterable, Tuple

ADMIN = "admin"
UNIVERSITY = "university"
BATCH_PREFIX = "batch_"
STUDENT_PREFIX = "student_"


def admin() -> str:
    return ADMIN


def university() -> str:
    return UNIVERSITY


def batch(batch_name: str | int) -> str:
    return f"{BATCH_PREFIX}{str(batch_name).strip()}"


def student(student_id: int | str) -> str:
    return f"{STUDENT_PREFIX}{student_id}"


def well_known(batches: Iterable[str]) -> Tuple[str, ...]:
    """Fixed dashboard keys, in display order."""
    return (admin(), university(), *(batch(name) for name in batches))


__all__ = ["admin", "university", "batch", "student", "well_known"]
