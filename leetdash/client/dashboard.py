"""HTTP client for dashboard endpoints with a local snapshot mirror."""

from __future__ import annotations

import asyncio
import re
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from leetdash.client.mirror import MirrorStorage
from leetdash.client.query import CachedQuery

DASHBOARD_STALE_TIME = 3 * 60.0
DASHBOARD_GC_TIME = 15 * 60.0

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class DashboardClientError(RuntimeError):
    pass


def dashboard_mirror_key(endpoint: str) -> str:
    return f"dashboard_{_NON_ALNUM.sub('_', endpoint)}"


class DashboardClient:
    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self._base_url = (base_url or "").strip().rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def get_json(self, path: str) -> Any:
        if not self._base_url:
            raise DashboardClientError("Dashboard base URL is not configured")

        url = f"{self._base_url}{path}"
        session = self._get_session()
        try:
            async with session.get(url) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise DashboardClientError(f"GET {path} -> {resp.status}: {text[:200]}")
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DashboardClientError(str(exc)) from exc

    def fetcher(self, endpoint: str) -> Callable[[], Awaitable[Any]]:
        async def fetch() -> Any:
            return await self.get_json(endpoint)

        return fetch

    def cached_dashboard(
        self,
        endpoint: str,
        storage: MirrorStorage,
        *,
        stale_time: float = DASHBOARD_STALE_TIME,
        gc_time: float = DASHBOARD_GC_TIME,
    ) -> CachedQuery[Any]:
        return CachedQuery(
            dashboard_mirror_key(endpoint),
            self.fetcher(endpoint),
            storage=storage,
            stale_time=stale_time,
            gc_time=gc_time,
        )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


__all__ = ["DashboardClient", "DashboardClientError", "dashboard_mirror_key"]
