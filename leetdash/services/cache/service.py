"""Stale-while-revalidate read-through cache for dashboard payloads.

Reads never wait on a refresh when *any* payload is stored: an expired entry
is returned immediately and a detached task recomputes it. Only a key that
was never cached blocks on its producer, and only then does a producer error
reach the caller. Storage faults are logged and degrade (miss, expired,
no-op) instead of propagating.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Sequence, TypeVar, Union

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from leetdash.core.error_handler import safe_background_task
from leetdash.core.settings import Settings, get_settings
from leetdash.core.time_utils import as_timedelta, ensure_aware_utc, utcnow
from leetdash.domain.models import DashboardCache
from leetdash.repositories.dashboard_cache import DashboardCacheStore, EntrySummary
from leetdash.services.cache import keys as cache_keys
from leetdash.services.cache import metrics
from leetdash.services.cache.scheduler import CLEANUP_JOB_ID, create_scheduler
from leetdash.services.cache.warmup import (
    DashboardSource,
    Producer,
    WarmUpReport,
    WarmUpTarget,
    fixed_targets,
    resolve_selection,
    select_first,
    student_targets,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Duration = Union[timedelta, float, int]


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    data: T
    from_cache: bool


@dataclass(frozen=True)
class CacheStatus:
    key: str
    expired: bool
    has_data: bool

    def as_dict(self) -> dict:
        return {"key": self.key, "expired": self.expired, "hasData": self.has_data}


class CacheService:
    """
    Dashboard cache over a persistent key-value store.

    The service owns its background work: the set of in-flight refresh tasks
    and the scheduler running the expiry sweep. Create one per process and
    pass it to whoever needs it.
    """

    def __init__(
        self,
        store: Optional[DashboardCacheStore] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self._store = store or DashboardCacheStore()
        self._settings = settings or get_settings()
        self._clock = clock
        self._scheduler = scheduler
        self.default_ttl = timedelta(seconds=self._settings.cache_default_ttl_seconds)
        self._refreshing: Dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    def _now(self) -> datetime:
        return ensure_aware_utc(self._clock())

    def _is_stale(self, entry: Union[DashboardCache, EntrySummary], now: datetime) -> bool:
        return now > ensure_aware_utc(entry.expires_at)

    def _store_fault(self, operation: str, cache_key: Optional[str], error: Any) -> None:
        metrics.record_store_error(operation)
        if cache_key is None:
            logger.error("Dashboard cache %s failed: %s", operation, error)
        else:
            logger.error("Dashboard cache %s failed for key %s: %s", operation, cache_key, error)

    async def _lookup(self, cache_key: str) -> Optional[DashboardCache]:
        """Entry holding a payload, or ``None`` (absent, null payload or read fault)."""
        result = await self._store.find_by_key(cache_key)
        if result.is_failure():
            self._store_fault("read", cache_key, result.error)
            return None
        entry = result.unwrap()
        if entry is None or entry.cache_data is None:
            return None
        return entry

    # ------------------------------------------------------------------
    # Basic operations
    # ------------------------------------------------------------------

    async def get_cached_data(self, cache_key: str) -> Any:
        """Stored payload for ``cache_key`` regardless of freshness, or ``None``."""
        entry = await self._lookup(cache_key)
        return None if entry is None else entry.cache_data

    async def is_expired(self, cache_key: str) -> bool:
        result = await self._store.find_by_key(cache_key)
        if result.is_failure():
            # A refresh is safer than serving stale data forever
            self._store_fault("expiry check", cache_key, result.error)
            return True
        entry = result.unwrap()
        if entry is None or entry.cache_data is None:
            return True
        return self._is_stale(entry, self._now())

    async def set_cached_data(self, cache_key: str, data: Any, ttl: Optional[Duration] = None) -> None:
        """Upsert ``data`` under ``cache_key``; expires ``ttl`` from now (default TTL when omitted)."""
        await self._write(cache_key, data, ttl)

    async def _write(self, cache_key: str, data: Any, ttl: Optional[Duration] = None) -> bool:
        now = self._now()
        lifetime = self.default_ttl if ttl is None else as_timedelta(ttl)
        result = await self._store.upsert(
            cache_key,
            data,
            last_updated=now,
            expires_at=now + lifetime,
        )
        if result.is_failure():
            self._store_fault("write", cache_key, result.error)
            return False
        logger.debug("Cache updated for key: %s", cache_key)
        return True

    # ------------------------------------------------------------------
    # Read-through with stale-while-revalidate
    # ------------------------------------------------------------------

    async def get_data_with_cache(self, cache_key: str, producer: Producer) -> CacheResult[Any]:
        """
        Serve ``cache_key`` from the cache, computing it with ``producer`` on a cold miss.

        A stored payload is returned immediately (``from_cache=True``); if it
        has expired, ``producer`` runs in the background and its result
        replaces the entry. Without a stored payload the producer is awaited,
        its result stored and returned (``from_cache=False``); producer
        errors propagate in that case and nothing is stored.
        """
        entry = await self._lookup(cache_key)
        if entry is not None:
            if self._is_stale(entry, self._now()):
                metrics.record_lookup(cache_key, "stale")
                self._schedule_refresh(cache_key, producer)
            else:
                metrics.record_lookup(cache_key, "hit")
            return CacheResult(data=entry.cache_data, from_cache=True)

        metrics.record_lookup(cache_key, "miss")
        try:
            fresh = await producer()
        except Exception:
            logger.error("Error fetching fresh data for key %s", cache_key, exc_info=True)
            raise
        await self._write(cache_key, fresh)
        return CacheResult(data=fresh, from_cache=False)

    def _schedule_refresh(self, cache_key: str, producer: Producer) -> asyncio.Task:
        running = self._refreshing.get(cache_key)
        if running is not None and not running.done():
            return running

        task = safe_background_task(
            f"dashboard_cache_refresh:{cache_key}",
            self._refresh(cache_key, producer),
            registry=self._background,
        )
        self._refreshing[cache_key] = task

        def _forget(done: asyncio.Task) -> None:
            if self._refreshing.get(cache_key) is done:
                del self._refreshing[cache_key]

        task.add_done_callback(_forget)
        return task

    async def _refresh(self, cache_key: str, producer: Producer) -> None:
        try:
            fresh = await producer()
        except Exception:
            metrics.record_refresh(cache_key, trigger="background", outcome="error")
            logger.error(
                "Background cache refresh failed for %s",
                cache_key,
                exc_info=True,
                extra={"cache_key": cache_key},
            )
            return
        if await self._write(cache_key, fresh):
            metrics.record_refresh(cache_key, trigger="background", outcome="ok")
            logger.info(
                "Background cache refresh completed for: %s", cache_key, extra={"cache_key": cache_key}
            )

    async def wait_for_refreshes(self) -> None:
        """Wait until every background refresh spawned so far has settled."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Warm-up
    # ------------------------------------------------------------------

    async def warm_up_cache(
        self,
        fixed: Iterable[WarmUpTarget],
        entities: Sequence[WarmUpTarget] = (),
        *,
        limit: Optional[int] = None,
        selection: Optional[str] = None,
    ) -> WarmUpReport:
        """
        Pre-compute fixed dashboards and a capped subset of per-entity dashboards.

        Best effort: every producer is guarded on its own, failures are logged
        and counted in the report, and nothing is raised.
        """
        report = WarmUpReport()
        logger.info("Starting cache warm-up...")

        for target in fixed:
            if await self._warm_target(target, report):
                report.fixed_cached += 1

        cap = self._settings.cache_warmup_limit if limit is None else limit
        policy_name = selection or self._settings.cache_warmup_selection
        try:
            select = resolve_selection(policy_name)
        except ValueError:
            logger.warning("Unknown warm-up selection %r, using 'first'", policy_name)
            select = select_first

        report.entity_candidates = len(entities)
        chosen = select(entities, cap)
        report.entity_selected = len(chosen)
        for target in chosen:
            if await self._warm_target(target, report):
                report.entity_cached += 1

        logger.info(
            "Cache warm-up completed: %d fixed, %d/%d entities cached (%d failed, %d skipped)",
            report.fixed_cached,
            report.entity_cached,
            report.entity_selected,
            report.failed,
            report.skipped,
        )
        return report

    async def _warm_target(self, target: WarmUpTarget, report: WarmUpReport) -> bool:
        try:
            payload = await target.producer()
        except Exception as exc:
            report.failed_keys.append(target.key)
            metrics.record_refresh(target.key, trigger="warmup", outcome="error")
            logger.warning("Skipping cache for %s: %s", target.key, exc)
            return False
        if payload is None:
            report.skipped += 1
            return False
        if not await self._write(target.key, payload):
            report.failed_keys.append(target.key)
            return False
        metrics.record_refresh(target.key, trigger="warmup", outcome="ok")
        return True

    async def warm_up_from_source(self, source: DashboardSource) -> WarmUpReport:
        """Warm admin, university, configured batches and the selected students."""
        fixed = fixed_targets(source, self._settings.cache_warmup_batches)
        try:
            student_ids = list(await source.list_student_ids())
        except Exception:
            logger.exception("Could not list students for cache warm-up")
            student_ids = []
        return await self.warm_up_cache(fixed, student_targets(source, student_ids))

    # ------------------------------------------------------------------
    # Invalidation and housekeeping
    # ------------------------------------------------------------------

    async def clear_expired_cache(self) -> int:
        """Delete entries that expired before now; returns how many were removed."""
        result = await self._store.delete_expired_before(self._now())
        if result.is_failure():
            self._store_fault("expiry sweep", None, result.error)
            return 0
        removed = result.unwrap()
        if removed > 0:
            metrics.record_expired_removed(removed)
            logger.info("Cleared %d expired cache entries", removed)
        return removed

    async def clear_cache(self, cache_key: str) -> None:
        result = await self._store.delete_by_key(cache_key)
        if result.is_failure():
            self._store_fault("delete", cache_key, result.error)
            return
        logger.info("Cache cleared for key: %s", cache_key)

    async def clear_all_cache(self) -> None:
        result = await self._store.delete_all()
        if result.is_failure():
            self._store_fault("delete all", None, result.error)
            return
        logger.info("All cache cleared (%d entries)", result.unwrap())

    async def cache_status(self, only: Optional[Sequence[str]] = None) -> List[CacheStatus]:
        """
        Presence and staleness per key.

        Without ``only``, lists the well-known dashboard keys (present or not)
        followed by every other stored key in alphabetical order.
        """
        result = await self._store.list_summaries()
        if result.is_failure():
            self._store_fault("status listing", None, result.error)
            summaries: Sequence[EntrySummary] = ()
        else:
            summaries = result.unwrap()

        by_key = {summary.cache_key: summary for summary in summaries}
        if only is not None:
            ordered = list(only)
        else:
            ordered = list(cache_keys.well_known(self._settings.cache_warmup_batches))
            ordered += sorted(key for key in by_key if key not in ordered)

        now = self._now()
        statuses = []
        for key in ordered:
            summary = by_key.get(key)
            has_data = summary is not None and summary.has_data
            statuses.append(
                CacheStatus(
                    key=key,
                    expired=not has_data or self._is_stale(summary, now),
                    has_data=has_data,
                )
            )
        return statuses

    # ------------------------------------------------------------------
    # Scheduled cleanup
    # ------------------------------------------------------------------

    @property
    def scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = create_scheduler()
        return self._scheduler

    def start_cache_cleanup(self, interval: Optional[Duration] = None) -> None:
        """
        Schedule ``clear_expired_cache`` every ``interval`` (default from settings).

        Must be called from a running event loop. Calling it again keeps the
        existing job.
        """
        scheduler = self.scheduler
        seconds = (
            self._settings.cache_cleanup_interval_seconds
            if interval is None
            else as_timedelta(interval).total_seconds()
        )
        if scheduler.get_job(CLEANUP_JOB_ID) is None:
            scheduler.add_job(
                self._run_cleanup,
                "interval",
                seconds=seconds,
                id=CLEANUP_JOB_ID,
                name="dashboard cache expiry sweep",
            )
        if not scheduler.running:
            scheduler.start()
        logger.info("Cache cleanup scheduler started (every %.0fs)", seconds)

    async def _run_cleanup(self) -> None:
        # One failed sweep must not take the job down; the next tick retries
        try:
            await self.clear_expired_cache()
        except Exception:
            logger.exception("Cache cleanup sweep failed")

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)


__all__ = ["CacheService", "CacheResult", "CacheStatus"]
