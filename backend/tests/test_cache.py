# tests/test_cache.py
# 进程内 TTL 缓存测试

import asyncio

import pytest

from app.core.cache import AsyncTTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return AsyncTTLCache("test", ttl=60, clock=clock)


class TestAsyncTTLCache:
    """缓存命中、过期、失效与请求合并"""

    @pytest.mark.asyncio
    async def test_hit_within_ttl(self, cache, clock):
        calls = []

        async def loader():
            calls.append(1)
            return {"value": len(calls)}

        first = await cache.get_or_load("k", loader)
        clock.now += 59
        second = await cache.get_or_load("k", loader)

        assert first is second
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_reload_after_ttl(self, cache, clock):
        calls = []

        async def loader():
            calls.append(1)
            return len(calls)

        await cache.get_or_load("k", loader)
        clock.now += 60

        assert await cache.get_or_load("k", loader) == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, cache):
        calls = []

        async def loader():
            calls.append(1)
            return len(calls)

        await cache.get_or_load("k", loader)
        cache.invalidate()

        assert cache.peek("k") is None
        assert await cache.get_or_load("k", loader) == 2

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_load(self, cache):
        calls = []
        release = asyncio.Event()

        async def loader():
            calls.append(1)
            await release.wait()
            return object()

        tasks = [asyncio.create_task(cache.get_or_load("k", loader)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert len(calls) == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_loader_error_reaches_all_waiters_and_is_not_cached(self, cache):
        release = asyncio.Event()

        async def failing():
            await release.wait()
            raise RuntimeError("db down")

        tasks = [asyncio.create_task(cache.get_or_load("k", failing)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)

        async def ok():
            return "fresh"

        assert await cache.get_or_load("k", ok) == "fresh"

    @pytest.mark.asyncio
    async def test_cancelled_first_caller_does_not_fail_other_waiters(self, cache):
        calls = []
        release = asyncio.Event()

        async def loader():
            calls.append(1)
            await release.wait()
            return {"tree": []}

        first = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)

        first.cancel()
        await asyncio.sleep(0)
        release.set()

        assert await second == {"tree": []}
        assert first.cancelled()
        assert len(calls) == 1
        assert cache.peek("k") == {"tree": []}

    @pytest.mark.asyncio
    async def test_caller_after_invalidation_starts_new_load(self, cache):
        release = asyncio.Event()
        values = iter(["old", "new"])

        async def loader():
            value = next(values)
            await release.wait()
            return value

        before = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)
        cache.invalidate("k")
        after = asyncio.create_task(cache.get_or_load("k", loader))
        await asyncio.sleep(0)
        release.set()

        assert await before == "old"
        assert await after == "new"
        assert cache.peek("k") == "new"

    @pytest.mark.asyncio
    async def test_result_loaded_across_invalidation_is_not_stored(self, cache):
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "stale"

        task = asyncio.create_task(cache.get_or_load("k", slow))
        await asyncio.sleep(0)
        cache.invalidate("k")
        release.set()

        assert await task == "stale"
        assert cache.peek("k") is None
