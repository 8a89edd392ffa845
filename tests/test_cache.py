import pytest

from safety_service.cache import SafetyCache


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return SafetyCache(clock=clock)


@pytest.mark.asyncio
async def test_put_then_get_round_trip(cache):
    value = {"recalls": 3}
    await cache.put("jeep|wrangler|2012", value, ttl_seconds=86_400)
    assert await cache.get("jeep|wrangler|2012") is value


@pytest.mark.asyncio
async def test_get_missing_key(cache):
    assert await cache.get("nope") is None


@pytest.mark.asyncio
async def test_entry_expires_lazily(cache, clock):
    await cache.put("k", "v", ttl_seconds=86_400)
    clock.advance(86_399)
    assert await cache.get("k") == "v"
    clock.advance(2)
    assert await cache.get("k") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_put_replaces_existing_entry(cache, clock):
    await cache.put("k", "old", ttl_seconds=10)
    clock.advance(5)
    await cache.put("k", "new", ttl_seconds=10)
    clock.advance(8)
    # The replacement carries its own expiry.
    assert await cache.get("k") == "new"


@pytest.mark.asyncio
async def test_namespaces_are_isolated(clock):
    a = SafetyCache("a", clock=clock)
    b = SafetyCache("b", clock=clock)
    await a.put("k", 1, ttl_seconds=10)
    assert await b.get("k") is None


@pytest.mark.asyncio
async def test_purge_on_capacity(clock):
    cache = SafetyCache(clock=clock, max_entries=2)
    await cache.put("a", 1, ttl_seconds=1)
    await cache.put("b", 2, ttl_seconds=1)
    clock.advance(5)
    await cache.put("c", 3, ttl_seconds=100)
    assert len(cache) == 1
    assert await cache.get("c") == 3


def test_purge_expired_counts(cache, clock):
    assert cache.purge_expired() == 0
