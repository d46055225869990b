import asyncio

import pytest

from infrastructure.cache.request_cache import RequestCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return RequestCache(stale_seconds=300, gc_seconds=600, clock=clock)


async def test_fresh_entry_is_served_from_cache(cache):
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        return {"id": 1}

    assert await cache.fetch("/api/user", loader) == {"id": 1}
    assert await cache.fetch("/api/user", loader) == {"id": 1}
    assert calls == 1
    assert (cache.hits, cache.misses) == (1, 1)


async def test_stale_entry_is_refetched(cache, clock):
    values = iter(["old", "new"])

    async def loader():
        return next(values)

    assert await cache.fetch("/api/user", loader) == "old"
    clock.now = 301
    assert await cache.fetch("/api/user", loader) == "new"


async def test_concurrent_fetches_share_one_load(cache):
    started = asyncio.Event()
    release = asyncio.Event()
    calls = 0

    async def loader():
        nonlocal calls
        calls += 1
        started.set()
        await release.wait()
        return "value"

    first = asyncio.create_task(cache.fetch("/api/user", loader))
    await started.wait()
    second = asyncio.create_task(cache.fetch("/api/user", loader))
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(first, second) == ["value", "value"]
    assert calls == 1


async def test_cancelled_caller_does_not_cancel_shared_load(cache):
    started = asyncio.Event()
    release = asyncio.Event()

    async def loader():
        started.set()
        await release.wait()
        return "value"

    first = asyncio.create_task(cache.fetch("/api/user", loader))
    await started.wait()
    second = asyncio.create_task(cache.fetch("/api/user", loader))
    await asyncio.sleep(0)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first
    release.set()

    assert await second == "value"
    assert cache.peek("/api/user") == "value"


async def test_loader_error_is_not_cached(cache):
    async def failing():
        raise RuntimeError("down")

    async def working():
        return "ok"

    with pytest.raises(RuntimeError):
        await cache.fetch("/api/user", failing)
    assert cache.peek("/api/user") is None
    assert await cache.fetch("/api/user", working) == "ok"


def test_invalidate_by_prefix(cache):
    cache.set("/api/payment/verify/A", 1)
    cache.set("/api/enrollments", 2)
    cache.set("/api/courses", 3)
    assert cache.invalidate("/api/payment", "/api/enrollments") == 2
    assert len(cache) == 1
    assert cache.invalidate() == 1
    assert len(cache) == 0


def test_prune_drops_old_entries(cache, clock):
    cache.set("/api/courses", 1)
    clock.now = 599
    assert cache.prune() == 0
    clock.now = 600
    assert cache.prune() == 1
    assert cache.peek("/api/courses") is None
