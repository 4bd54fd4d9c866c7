import pytest

from nepa_integration.domain.models.api import CacheConfig, CacheStrategy, CallConfig
from nepa_integration.infrastructure.cache.caching_service import CachingServiceImpl, make_cache_key


def test_cache_key_is_stable_and_sensitive_to_identity():
    key = make_cache_key(CallConfig("GET", "/accounts", params={"b": 2, "a": 1}))
    same = make_cache_key(CallConfig("get", "/accounts", params={"a": 1, "b": 2}))
    other = make_cache_key(CallConfig("GET", "/accounts", params={"a": 1, "b": 3}))

    assert key == same
    assert key != other
    assert len(key) == 64


@pytest.mark.asyncio
async def test_get_returns_value_within_ttl(fake_clock):
    cache = CachingServiceImpl(ttl_seconds=10, clock=fake_clock)
    await cache.set("k", {"balance": 5})
    fake_clock.advance(10)

    assert await cache.get("k") == {"balance": 5}


@pytest.mark.asyncio
async def test_expired_entry_is_removed_on_read(fake_clock):
    cache = CachingServiceImpl(ttl_seconds=10, clock=fake_clock)
    await cache.set("k", "v")
    fake_clock.advance(10.5)

    assert await cache.get("k") is None
    assert "k" not in cache
    assert cache.size == 0


@pytest.mark.asyncio
async def test_fifo_evicts_first_inserted(fake_clock):
    cache = CachingServiceImpl(max_size=2, strategy=CacheStrategy.FIFO, clock=fake_clock)
    await cache.set("a", 1)
    fake_clock.advance(1)
    await cache.set("b", 2)
    await cache.get("a")
    await cache.set("c", 3)

    assert "a" not in cache
    assert "b" in cache and "c" in cache


@pytest.mark.asyncio
async def test_lru_evicts_oldest_insertion_even_if_read(fake_clock):
    cache = CachingServiceImpl(max_size=2, strategy=CacheStrategy.LRU, clock=fake_clock)
    await cache.set("a", 1)
    fake_clock.advance(1)
    await cache.set("b", 2)
    fake_clock.advance(1)
    await cache.get("a")
    await cache.set("c", 3)

    assert "a" not in cache
    assert cache.size == 2


@pytest.mark.asyncio
async def test_lfu_evicts_least_hit_entry(fake_clock):
    cache = CachingServiceImpl(max_size=2, strategy=CacheStrategy.LFU, clock=fake_clock)
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.get("a")
    await cache.get("a")
    await cache.get("b")
    await cache.set("c", 3)

    assert "b" not in cache
    assert "a" in cache and "c" in cache


@pytest.mark.asyncio
async def test_overwriting_existing_key_does_not_evict(fake_clock):
    cache = CachingServiceImpl(max_size=2, clock=fake_clock)
    await cache.set("a", 1)
    await cache.set("b", 2)
    await cache.set("a", 10)

    assert cache.size == 2
    assert await cache.get("a") == 10
    assert await cache.get("b") == 2


@pytest.mark.asyncio
async def test_delete_and_clear(fake_clock):
    cache = CachingServiceImpl(clock=fake_clock)
    await cache.set("a", 1)
    await cache.set("b", 2)

    await cache.delete("a")
    assert await cache.get("a") is None

    await cache.clear()
    assert cache.size == 0


def test_reconfigure_applies_new_limits():
    cache = CachingServiceImpl()
    cache.reconfigure(CacheConfig(ttl_seconds=5, max_size=3, strategy=CacheStrategy.LFU))

    assert cache.ttl_seconds == 5
    assert cache.max_size == 3
    assert cache.strategy is CacheStrategy.LFU


@pytest.mark.asyncio
async def test_lowering_max_size_shrinks_the_cache(fake_clock):
    cache = CachingServiceImpl(max_size=5, strategy=CacheStrategy.FIFO, clock=fake_clock)
    for key in "abcde":
        await cache.set(key, key)

    cache.reconfigure(CacheConfig(max_size=2, strategy=CacheStrategy.FIFO))
    assert cache.size == 2
    assert "d" in cache and "e" in cache

    for key in "xyz":
        await cache.set(key, key)
    assert cache.size == 2
    assert "y" in cache and "z" in cache
