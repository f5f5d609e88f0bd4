"""APScheduler wiring for the recurring expiry sweep."""

from __future__ import annotations

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

CLEANUP_JOB_ID = "dashboard_cache:clear_expired"


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 60},
        timezone="UTC",
    )


__all__ = ["create_scheduler", "CLEANUP_JOB_ID"]
