"""Freshness-gated cache: TTL tiers, single-flight, stale-on-error, bulk variant."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from binder.core.cache import (
    BulkFreshnessCache,
    CacheState,
    Freshness,
    FreshnessCache,
    Persisted,
)
from binder.core.errors import NoDataAvailable, StorageError, UpstreamUnavailable

MEMORY_TTL     = 3600
PERSISTENT_TTL = 86400


def make_cache(clock, fetch=None, load=None, persist=None, **kwargs) -> FreshnessCache:
    return FreshnessCache(
        "test",
        fetch or AsyncMock(return_value=1.6),
        memory_ttl=MEMORY_TTL,
        persistent_ttl=PERSISTENT_TTL,
        load_persisted=load or AsyncMock(return_value=None),
        persist=persist or AsyncMock(),
        clock=clock,
        **kwargs,
    )


# ── Single-flight ─────────────────────────────────────────────────────────────

async def test_concurrent_cold_gets_share_one_upstream_call(clock):
    calls = 0

    async def slow_fetch():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return {"rate": 1.55}

    cache = make_cache(clock, fetch=slow_fetch)
    results = await asyncio.gather(*(cache.get() for _ in range(20)))

    assert calls == 1
    assert all(r is results[0] for r in results)


async def test_concurrent_waiters_see_the_same_failure(clock):
    gate = asyncio.Event()

    async def failing_fetch():
        await gate.wait()
        raise UpstreamUnavailable("test", "boom")

    fetch = AsyncMock(side_effect=failing_fetch)
    cache = make_cache(clock, fetch=fetch)

    pending = [asyncio.ensure_future(cache.get()) for _ in range(5)]
    await asyncio.sleep(0)
    assert cache.state is CacheState.FETCHING
    gate.set()
    results = await asyncio.gather(*pending, return_exceptions=True)

    assert fetch.await_count == 1
    assert all(isinstance(r, NoDataAvailable) for r in results)


# ── TTL tiers ─────────────────────────────────────────────────────────────────

async def test_memory_hit_does_no_io(clock):
    fetch, load, persist = AsyncMock(return_value=1.6), AsyncMock(return_value=None), AsyncMock()
    cache = make_cache(clock, fetch, load, persist)

    first = await cache.get_result()
    assert first.freshness is Freshness.UPSTREAM
    persist.assert_awaited_once_with(1.6)

    second = await cache.get_result()
    assert second.freshness is Freshness.MEMORY
    assert second.value == 1.6
    assert fetch.await_count == 1
    assert load.await_count == 1
    assert persist.await_count == 1


async def test_after_memory_ttl_persisted_row_is_adopted_without_upstream(clock):
    fetch, load = AsyncMock(return_value=1.6), AsyncMock(return_value=None)
    cache = make_cache(clock, fetch, load)
    await cache.get()

    load.return_value = Persisted(value=1.6, updated_at=clock())
    clock.advance(MEMORY_TTL + 1)
    result = await cache.get_result()

    assert result.freshness is Freshness.PERSISTED
    assert result.value == 1.6
    assert fetch.await_count == 1
    assert load.await_count == 2


async def test_after_persistent_ttl_upstream_is_called_again(clock):
    fetch = AsyncMock(return_value=1.6)
    load  = AsyncMock(return_value=Persisted(value=1.5, updated_at=clock()))
    cache = make_cache(clock, fetch, load)

    assert (await cache.get_result()).freshness is Freshness.PERSISTED
    assert fetch.await_count == 0

    clock.advance(PERSISTENT_TTL + 1)
    fetch.return_value = 1.7
    result = await cache.get_result()

    assert result.freshness is Freshness.UPSTREAM
    assert result.value == 1.7
    assert fetch.await_count == 1


async def test_invalidate_forces_refetch_within_memory_ttl(clock):
    fetch = AsyncMock(side_effect=[1.6, 1.65])
    cache = make_cache(clock, fetch)

    assert await cache.get() == 1.6
    cache.invalidate()
    assert await cache.get() == 1.65
    assert fetch.await_count == 2


async def test_invalidate_keeps_value_for_stale_fallback(clock):
    fetch = AsyncMock(side_effect=[{"v": 1}, UpstreamUnavailable("test")])
    cache = FreshnessCache("memonly", fetch, memory_ttl=MEMORY_TTL, clock=clock)

    await cache.get()
    cache.invalidate()
    result = await cache.get_result()

    assert result.value == {"v": 1}
    assert result.freshness is Freshness.STALE


# ── Failure paths ─────────────────────────────────────────────────────────────

async def test_stale_persisted_row_served_when_upstream_fails(clock):
    stale = Persisted(value=1.42, updated_at=clock() - 10 * PERSISTENT_TTL)
    fetch, persist = AsyncMock(side_effect=UpstreamUnavailable("test", "down")), AsyncMock()
    cache = make_cache(clock, fetch, AsyncMock(return_value=stale), persist)

    result = await cache.get_result()

    assert result.value == 1.42
    assert result.freshness is Freshness.STALE
    assert result.is_stale
    persist.assert_not_awaited()


async def test_no_data_anywhere_raises(clock):
    cache = make_cache(clock, fetch=AsyncMock(side_effect=UpstreamUnavailable("test")))
    with pytest.raises(NoDataAvailable):
        await cache.get()


async def test_fallback_used_when_nothing_cached(clock):
    cache = make_cache(clock, fetch=AsyncMock(side_effect=UpstreamUnavailable("test")), fallback=1.5)
    result = await cache.get_result()

    assert result.value == 1.5
    assert result.freshness is Freshness.FALLBACK
    # fallback is not remembered; the next call tries upstream again
    assert cache.state is CacheState.IDLE


async def test_in_flight_marker_cleared_after_failure(clock):
    fetch = AsyncMock(side_effect=UpstreamUnavailable("test"))
    cache = make_cache(clock, fetch)

    with pytest.raises(NoDataAvailable):
        await cache.get()
    assert cache.state is CacheState.IDLE

    fetch.side_effect  = None
    fetch.return_value = 2.0
    assert await cache.get() == 2.0
    assert fetch.await_count == 2


async def test_storage_read_error_treated_as_missing_row(clock):
    load  = AsyncMock(side_effect=StorageError("db locked"))
    fetch = AsyncMock(return_value=1.6)
    cache = make_cache(clock, fetch, load)

    assert await cache.get() == 1.6
    fetch.assert_awaited_once()


async def test_storage_write_error_still_serves_fresh_value(clock):
    cache = make_cache(clock, persist=AsyncMock(side_effect=StorageError("read-only")))
    result = await cache.get_result()

    assert result.value == 1.6
    assert result.freshness is Freshness.UPSTREAM


# ── Bulk variant ──────────────────────────────────────────────────────────────

def make_bulk(clock, fetch, load, persist) -> BulkFreshnessCache:
    return BulkFreshnessCache(
        "bulk",
        fetch,
        memory_ttl=MEMORY_TTL,
        persistent_ttl=7 * PERSISTENT_TTL,
        load_persisted=load,
        persist=persist,
        clock=clock,
    )


async def test_bulk_fresh_snapshot_skips_download(clock):
    fetch = AsyncMock()
    load  = AsyncMock(return_value=Persisted(value=12000, updated_at=clock() - PERSISTENT_TTL))
    cache = make_bulk(clock, fetch, load, AsyncMock())

    result = await cache.get_result()

    assert result.value == 12000
    assert result.freshness is Freshness.PERSISTED
    fetch.assert_not_awaited()


async def test_bulk_refresh_replaces_whole_collection(clock):
    rows    = [{"card_id": i} for i in range(3)]
    persist = AsyncMock()
    cache   = make_bulk(clock, AsyncMock(return_value=rows), AsyncMock(return_value=None), persist)

    result = await cache.get_result()

    assert result.value == 3
    persist.assert_awaited_once_with(rows)


async def test_bulk_failed_swap_keeps_stale_collection(clock):
    old     = Persisted(value=500, updated_at=clock() - 30 * PERSISTENT_TTL)
    persist = AsyncMock(side_effect=StorageError("disk full"))
    cache   = make_bulk(clock, AsyncMock(return_value=[{"card_id": 1}]), AsyncMock(return_value=old), persist)

    result = await cache.get_result()

    assert result.value == 500
    assert result.freshness is Freshness.STALE


async def test_bulk_empty_snapshot_is_a_failure(clock):
    persist = AsyncMock()
    cache   = make_bulk(clock, AsyncMock(return_value=[]), AsyncMock(return_value=None), persist)

    with pytest.raises(NoDataAvailable):
        await cache.get()
    persist.assert_not_awaited()


async def test_unexpected_upstream_error_degrades_like_unavailable(clock):
    fetch = AsyncMock(side_effect=[1.6, AttributeError("'str' object has no attribute 'get'")])
    cache = make_cache(clock, fetch)

    await cache.get()
    cache.invalidate()
    result = await cache.get_result()

    assert result.value == 1.6
    assert result.freshness is Freshness.STALE
    assert cache.state is CacheState.POPULATED


async def test_unexpected_upstream_error_with_nothing_cached(clock):
    cache = make_cache(clock, fetch=AsyncMock(side_effect=TypeError("'int' object is not iterable")))

    with pytest.raises(NoDataAvailable):
        await cache.get()
    assert cache.state is CacheState.IDLE
