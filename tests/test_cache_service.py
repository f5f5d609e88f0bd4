import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from leetdash.repositories import DashboardCacheStore
from leetdash.services.cache import CacheService


@asynccontextmanager
async def _unavailable_session():
    raise OperationalError("SELECT 1", {}, Exception("connection refused"))
    yield  # pragma: no cover


@pytest.fixture
def broken_service(clock):
    service = CacheService(DashboardCacheStore(session_factory=_unavailable_session), clock=clock)
    yield service
    service.shutdown()


@pytest.mark.asyncio
async def test_unknown_key_is_absent_and_expired(cache_service):
    assert await cache_service.get_cached_data("student_99") is None
    assert await cache_service.is_expired("student_99") is True


@pytest.mark.asyncio
async def test_set_then_get_until_ttl_elapses(cache_service, clock):
    await cache_service.set_cached_data("admin", {"students": 12}, ttl=60)

    assert await cache_service.get_cached_data("admin") == {"students": 12}
    assert await cache_service.is_expired("admin") is False

    clock.advance(seconds=59)
    assert await cache_service.is_expired("admin") is False

    clock.advance(seconds=2)
    assert await cache_service.is_expired("admin") is True
    # Expired entries are still readable
    assert await cache_service.get_cached_data("admin") == {"students": 12}


@pytest.mark.asyncio
async def test_default_ttl_applies_when_omitted(cache_service, clock):
    await cache_service.set_cached_data("university", {"rank": 1})

    clock.advance(seconds=cache_service.default_ttl.total_seconds() - 1)
    assert await cache_service.is_expired("university") is False

    clock.advance(seconds=2)
    assert await cache_service.is_expired("university") is True


@pytest.mark.asyncio
async def test_null_payload_is_treated_as_absent(cache_service):
    await cache_service.set_cached_data("student_5", None)
    producer = AsyncMock(return_value={"id": 5})

    assert await cache_service.get_cached_data("student_5") is None
    assert await cache_service.is_expired("student_5") is True
    [status] = await cache_service.cache_status(only=["student_5"])
    assert status.as_dict() == {"key": "student_5", "expired": True, "hasData": False}
    result = await cache_service.get_data_with_cache("student_5", producer)

    assert result.from_cache is False
    assert result.data == {"id": 5}
    producer.assert_awaited_once()


@pytest.mark.asyncio
async def test_cold_miss_awaits_producer_and_stores_result(cache_service):
    producer = AsyncMock(return_value={"solved": 40})

    result = await cache_service.get_data_with_cache("student_1", producer)

    assert result.data == {"solved": 40}
    assert result.from_cache is False
    producer.assert_awaited_once()
    assert await cache_service.get_cached_data("student_1") == {"solved": 40}
    assert await cache_service.is_expired("student_1") is False


@pytest.mark.asyncio
async def test_cold_miss_producer_error_propagates_and_stores_nothing(cache_service):
    producer = AsyncMock(side_effect=RuntimeError("leetcode api down"))

    with pytest.raises(RuntimeError, match="leetcode api down"):
        await cache_service.get_data_with_cache("student_2", producer)

    assert await cache_service.get_cached_data("student_2") is None
    assert await cache_service.is_expired("student_2") is True


@pytest.mark.asyncio
async def test_fresh_hit_skips_producer(cache_service):
    await cache_service.set_cached_data("batch_2027", {"size": 30}, ttl=600)
    producer = AsyncMock(return_value={"size": 31})

    result = await cache_service.get_data_with_cache("batch_2027", producer)

    assert result.from_cache is True
    assert result.data == {"size": 30}
    await cache_service.wait_for_refreshes()
    producer.assert_not_awaited()


@pytest.mark.asyncio
async def test_falsy_payload_counts_as_hit(cache_service):
    await cache_service.set_cached_data("batch_2028", {}, ttl=600)
    producer = AsyncMock(return_value={"size": 1})

    result = await cache_service.get_data_with_cache("batch_2028", producer)

    assert result.from_cache is True
    assert result.data == {}
    producer.assert_not_awaited()


@pytest.mark.asyncio
async def test_stale_hit_returns_old_value_and_refreshes_in_background(cache_service, clock):
    await cache_service.set_cached_data("admin", {"v": 1}, ttl=60)
    clock.advance(seconds=120)
    producer = AsyncMock(return_value={"v": 2})

    result = await cache_service.get_data_with_cache("admin", producer)

    assert result.from_cache is True
    assert result.data == {"v": 1}

    await cache_service.wait_for_refreshes()
    producer.assert_awaited_once()
    assert await cache_service.get_cached_data("admin") == {"v": 2}
    assert await cache_service.is_expired("admin") is False


@pytest.mark.asyncio
async def test_expired_entry_is_revalidated_with_real_clock():
    service = CacheService()
    try:
        await service.set_cached_data("student_7", {"count": 5}, ttl=0.1)
        await asyncio.sleep(0.15)

        result = await service.get_data_with_cache("student_7", AsyncMock(return_value={"count": 6}))

        assert result.data == {"count": 5}
        assert result.from_cache is True
        await asyncio.wait_for(service.wait_for_refreshes(), timeout=1.0)
        assert await service.get_cached_data("student_7") == {"count": 6}
    finally:
        service.shutdown()


@pytest.mark.asyncio
async def test_concurrent_stale_reads_share_one_refresh(cache_service, clock):
    await cache_service.set_cached_data("university", {"v": 1}, ttl=60)
    clock.advance(seconds=61)

    release = asyncio.Event()
    calls = 0

    async def slow_producer():
        nonlocal calls
        calls += 1
        await release.wait()
        return {"v": 2}

    first, second = await asyncio.gather(
        cache_service.get_data_with_cache("university", slow_producer),
        cache_service.get_data_with_cache("university", slow_producer),
    )
    third = await cache_service.get_data_with_cache("university", slow_producer)

    assert first.data == second.data == third.data == {"v": 1}
    release.set()
    await cache_service.wait_for_refreshes()

    assert calls == 1
    assert await cache_service.get_cached_data("university") == {"v": 2}


@pytest.mark.asyncio
async def test_background_refresh_failure_keeps_old_value(cache_service, clock):
    await cache_service.set_cached_data("student_3", {"v": "old"}, ttl=60)
    clock.advance(seconds=61)
    producer = AsyncMock(side_effect=RuntimeError("timeout"))

    result = await cache_service.get_data_with_cache("student_3", producer)
    await cache_service.wait_for_refreshes()

    assert result.data == {"v": "old"}
    producer.assert_awaited_once()
    assert await cache_service.get_cached_data("student_3") == {"v": "old"}
    assert await cache_service.is_expired("student_3") is True

    # A later stale read starts a new attempt
    producer.side_effect = None
    producer.return_value = {"v": "new"}
    await cache_service.get_data_with_cache("student_3", producer)
    await cache_service.wait_for_refreshes()
    assert await cache_service.get_cached_data("student_3") == {"v": "new"}


@pytest.mark.asyncio
async def test_clear_expired_cache_removes_only_expired(cache_service, clock):
    await cache_service.set_cached_data("a", 1, ttl=60)
    await cache_service.set_cached_data("b", 2, ttl=600)
    await cache_service.set_cached_data("c", 3, ttl=60)
    clock.advance(seconds=120)

    removed = await cache_service.clear_expired_cache()

    assert removed == 2
    assert await cache_service.get_cached_data("a") is None
    assert await cache_service.get_cached_data("c") is None
    assert await cache_service.get_cached_data("b") == 2
    assert await cache_service.clear_expired_cache() == 0


@pytest.mark.asyncio
async def test_clear_cache_is_idempotent(cache_service):
    await cache_service.set_cached_data("student_8", {"x": 1})

    await cache_service.clear_cache("student_8")
    await cache_service.clear_cache("student_8")
    await cache_service.clear_cache("never_stored")

    assert await cache_service.get_cached_data("student_8") is None
    assert await cache_service.is_expired("student_8") is True


@pytest.mark.asyncio
async def test_clear_all_cache(cache_service):
    await cache_service.set_cached_data("admin", 1)
    await cache_service.set_cached_data("student_1", 2)

    await cache_service.clear_all_cache()

    assert await cache_service.get_cached_data("admin") is None
    assert await cache_service.get_cached_data("student_1") is None


@pytest.mark.asyncio
async def test_cache_status_lists_well_known_keys_then_stored_ones(cache_service, clock):
    await cache_service.set_cached_data("admin", {"ok": True}, ttl=600)
    await cache_service.set_cached_data("student_3", {"id": 3}, ttl=60)
    await cache_service.set_cached_data("batch_2027", {"b": 1}, ttl=60)
    clock.advance(seconds=120)

    statuses = {status.key: status for status in await cache_service.cache_status()}
    ordered = [status.key for status in await cache_service.cache_status()]

    assert ordered == ["admin", "university", "batch_2027", "batch_2028", "student_3"]
    assert statuses["admin"].as_dict() == {"key": "admin", "expired": False, "hasData": True}
    assert statuses["university"].expired is True
    assert statuses["university"].has_data is False
    assert statuses["batch_2027"].expired is True
    assert statuses["batch_2027"].has_data is True
    assert statuses["student_3"].has_data is True


@pytest.mark.asyncio
async def test_cache_status_for_selected_keys(cache_service):
    await cache_service.set_cached_data("student_1", {"id": 1})

    statuses = await cache_service.cache_status(only=["student_1", "student_2"])

    assert [s.as_dict() for s in statuses] == [
        {"key": "student_1", "expired": False, "hasData": True},
        {"key": "student_2", "expired": True, "hasData": False},
    ]


@pytest.mark.asyncio
async def test_storage_faults_degrade_instead_of_raising(broken_service):
    producer = AsyncMock(return_value={"live": True})

    assert await broken_service.get_cached_data("admin") is None
    assert await broken_service.is_expired("admin") is True
    await broken_service.set_cached_data("admin", {"v": 1})
    await broken_service.clear_cache("admin")
    await broken_service.clear_all_cache()
    assert await broken_service.clear_expired_cache() == 0

    result = await broken_service.get_data_with_cache("admin", producer)
    assert result.data == {"live": True}
    assert result.from_cache is False
    producer.assert_awaited_once()

    statuses = await broken_service.cache_status()
    assert all(status.expired and not status.has_data for status in statuses)


@pytest.mark.asyncio
async def test_refresh_write_fault_is_swallowed(clock):
    store = DashboardCacheStore()
    service = CacheService(store, clock=clock)
    await service.set_cached_data("admin", {"v": 1}, ttl=1)
    clock.advance(seconds=5)

    fault = await DashboardCacheStore(session_factory=_unavailable_session).upsert(
        "admin", {}, last_updated=clock(), expires_at=clock()
    )
    failing_upsert = AsyncMock(return_value=fault)
    store.upsert = failing_upsert

    result = await service.get_data_with_cache("admin", AsyncMock(return_value={"v": 2}))
    await service.wait_for_refreshes()

    assert result.data == {"v": 1}
    failing_upsert.assert_awaited_once()
    assert await service.get_cached_data("admin") == {"v": 1}
