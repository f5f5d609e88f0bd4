"""Instant first paint from a mirrored snapshot while the live fetch runs.

A ``CachedQuery`` shows the last payload it mirrored (if younger than the
garbage-collection horizon) and swaps in live data the moment a fetch
succeeds, so the displayed data goes from snapshot to live without an empty
loading state in between.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, Generic, Optional, Set, TypeVar

from leetdash.client.mirror import MirrorStorage

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STALE_TIME = 5 * 60.0
DEFAULT_GC_TIME = 10 * 60.0


@dataclass(frozen=True)
class CachedQueryState(Generic[T]):
    data: Optional[T]
    is_loading: bool
    is_from_cache: bool
    cache_age: Optional[float]
    error: Optional[BaseException]
    is_success: bool

    @property
    def is_error(self) -> bool:
        return self.error is not None


class CachedQuery(Generic[T]):
    """
    Live query backed by a local snapshot mirror.

    Args:
        key: Mirror key; the write time is stored under ``<key>_timestamp``.
        fetcher: Zero-argument coroutine function returning the live payload.
        storage: Durable string store for the mirror.
        stale_time: Seconds a live result stays fresh; ``fetch()`` is a no-op
            inside that window unless forced.
        gc_time: Seconds after which a mirrored snapshot is discarded.
        clock: Returns the current time in seconds since the epoch.
    """

    def __init__(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        *,
        storage: MirrorStorage,
        stale_time: float = DEFAULT_STALE_TIME,
        gc_time: float = DEFAULT_GC_TIME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key = key
        self.timestamp_key = f"{key}_timestamp"
        self._fetcher = fetcher
        self._storage = storage
        self.stale_time = stale_time
        self.gc_time = gc_time
        self._clock = clock

        self._snapshot: Optional[T] = None
        self._cache_age: Optional[float] = None
        self._is_from_cache = False
        self._live_data: Optional[T] = None
        self._live_fetched_at: Optional[float] = None
        self._error: Optional[BaseException] = None
        self._inflight: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> CachedQueryState[T]:
        showing_snapshot = self._is_from_cache and self._snapshot is not None
        fetching = self._inflight is not None and not self._inflight.done()
        return CachedQueryState(
            data=self._snapshot if showing_snapshot else self._live_data,
            is_loading=False if self._is_from_cache else (fetching and self._live_data is None),
            is_from_cache=self._is_from_cache,
            cache_age=self._cache_age,
            error=self._error,
            is_success=self._live_fetched_at is not None,
        )

    # ------------------------------------------------------------------
    # Mirror
    # ------------------------------------------------------------------

    def _discard_snapshot(self) -> None:
        try:
            self._storage.remove_item(self.key)
            self._storage.remove_item(self.timestamp_key)
        except OSError:
            logger.warning("Failed to remove mirror entry %s", self.key, exc_info=True)
        self._snapshot = None
        self._cache_age = None
        self._is_from_cache = False

    def load_snapshot(self) -> Optional[T]:
        """Expose the mirrored payload if it is younger than ``gc_time``."""
        try:
            raw = self._storage.get_item(self.key)
            raw_timestamp = self._storage.get_item(self.timestamp_key)
        except UnicodeDecodeError:
            logger.warning("Discarding undecodable mirror entry %s", self.key)
            self._discard_snapshot()
            return None
        except OSError:
            logger.warning("Failed to read mirror entry %s", self.key, exc_info=True)
            return None
        if raw is None or raw_timestamp is None:
            return None

        try:
            value = json.loads(raw)
            written_at = int(raw_timestamp) / 1000.0
        except (TypeError, ValueError):
            logger.warning("Discarding unreadable mirror entry %s", self.key)
            self._discard_snapshot()
            return None

        age = max(self._clock() - written_at, 0.0)
        if age > self.gc_time:
            self._discard_snapshot()
            return None

        self._snapshot = value
        self._cache_age = age
        self._is_from_cache = True
        return value

    def _write_snapshot(self, value: T) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError):
            logger.warning("Failed to mirror data for %s: not JSON-serialisable", self.key)
            return
        try:
            self._storage.set_item(self.key, encoded)
            self._storage.set_item(self.timestamp_key, str(int(self._clock() * 1000)))
        except OSError:
            logger.warning("Failed to mirror data for %s", self.key, exc_info=True)

    # ------------------------------------------------------------------
    # Live fetch
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _live_is_fresh(self) -> bool:
        if self._live_fetched_at is None:
            return False
        return self._clock() - self._live_fetched_at < self.stale_time

    async def fetch(self, *, force: bool = False) -> Optional[T]:
        """
        Run the live fetch unless live data is still inside ``stale_time``.

        Failures are recorded in ``state.error``; the displayed data is kept.
        """
        if not force and self._live_is_fresh():
            return self._live_data
        await self._start_fetch()
        return self._live_data

    def _start_fetch(self) -> asyncio.Task:
        if self._inflight is None or self._inflight.done():
            self._inflight = self._spawn(self._run_fetch(), f"cached_query:{self.key}")
        return self._inflight

    async def _run_fetch(self) -> None:
        try:
            value = await self._fetcher()
        except Exception as exc:
            self._error = exc
            logger.warning("Live fetch failed for %s: %s", self.key, exc)
            return

        self._live_data = value
        self._live_fetched_at = self._clock()
        self._error = None
        self._write_snapshot(value)
        if self._is_from_cache:
            self._is_from_cache = False
            self._cache_age = None
            self._snapshot = None

    def mount(self) -> CachedQueryState[T]:
        """Show the mirrored snapshot (if any) and start the live fetch."""
        self.load_snapshot()
        if not self._live_is_fresh():
            self._start_fetch()
        return self.state

    def refresh_in_background(self) -> asyncio.Task:
        """Re-run the live fetch; displayed data changes only once it resolves."""
        return self._spawn(self.fetch(force=True), f"cached_query_refresh:{self.key}")

    async def wait(self) -> CachedQueryState[T]:
        """Wait for every fetch started by this query, then return the state."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return self.state


__all__ = ["CachedQuery", "CachedQueryState", "DEFAULT_STALE_TIME", "DEFAULT_GC_TIME"]
