import asyncio
from unittest.mock import AsyncMock

import pytest

from leetdash.services.cache.scheduler import CLEANUP_JOB_ID


@pytest.mark.asyncio
async def test_start_cache_cleanup_is_idempotent(cache_service):
    cache_service.start_cache_cleanup(interval=3600)
    cache_service.start_cache_cleanup(interval=60)

    jobs = cache_service.scheduler.get_jobs()
    assert [job.id for job in jobs] == [CLEANUP_JOB_ID]
    assert cache_service.scheduler.running

    cache_service.shutdown()
    cache_service.shutdown()


@pytest.mark.asyncio
async def test_scheduled_sweep_removes_expired_entries(cache_service, clock):
    await cache_service.set_cached_data("student_1", {"id": 1}, ttl=60)
    await cache_service.set_cached_data("student_2", {"id": 2}, ttl=3600)
    clock.advance(seconds=120)

    cache_service.start_cache_cleanup(interval=0.05)

    for _ in range(100):
        if await cache_service.get_cached_data("student_1") is None:
            break
        await asyncio.sleep(0.02)

    assert await cache_service.get_cached_data("student_1") is None
    assert await cache_service.get_cached_data("student_2") == {"id": 2}


@pytest.mark.asyncio
async def test_failed_sweep_is_contained(cache_service):
    cache_service.clear_expired_cache = AsyncMock(side_effect=RuntimeError("boom"))

    await cache_service._run_cleanup()

    cache_service.clear_expired_cache.assert_awaited_once()
