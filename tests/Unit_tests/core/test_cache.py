import asyncio

import pytest

from pricewatch.core.cache import AsyncLRUCache, CacheBackend


@pytest.mark.asyncio
async def test_cache_init() -> None:
    """Test cache initialization with default values."""
    cache = AsyncLRUCache()
    assert cache.max_size == 1000
    assert cache.ttl == 300
    assert len(cache.cache) == 0
    assert isinstance(cache, CacheBackend)


@pytest.mark.asyncio
async def test_cache_set_get() -> None:
    cache = AsyncLRUCache()

    await cache.set("products:alice", '[{"id": 1}]')

    assert await cache.get("products:alice") == '[{"id": 1}]'
    assert await cache.get("products:bob") is None
    await cache.close()


@pytest.mark.asyncio
async def test_cache_default_expiry() -> None:
    """Entries expire after the cache-wide TTL."""
    cache = AsyncLRUCache(ttl=1)

    await cache.set("key", "value")
    assert await cache.get("key") == "value"

    await asyncio.sleep(1.1)

    assert await cache.get("key") is None
    await cache.close()


@pytest.mark.asyncio
async def test_cache_per_entry_ttl() -> None:
    """A TTL passed to set overrides the default."""
    cache = AsyncLRUCache(ttl=300)

    await cache.set("short", "value", ttl=1)
    await cache.set("long", "value")

    await asyncio.sleep(1.1)

    assert await cache.get("short") is None
    assert await cache.get("long") == "value"
    await cache.close()


@pytest.mark.asyncio
async def test_cache_eviction() -> None:
    """Test LRU eviction policy."""
    cache = AsyncLRUCache(max_size=2)

    await cache.set("key1", "value1")
    await cache.set("key2", "value2")

    # Access key1 to make key2 the LRU
    await cache.get("key1")

    await cache.set("key3", "value3")

    assert await cache.get("key1") == "value1"
    assert await cache.get("key2") is None
    assert await cache.get("key3") == "value3"
    await cache.close()


@pytest.mark.asyncio
async def test_cache_delete() -> None:
    """Deleting one key leaves the others alone."""
    cache = AsyncLRUCache()

    await cache.set("key1", "value1")
    await cache.set("key2", "value2")

    await cache.delete("key1")
    await cache.delete("missing")

    assert await cache.get("key1") is None
    assert await cache.get("key2") == "value2"
    await cache.close()


@pytest.mark.asyncio
async def test_cache_cleanup_task() -> None:
    """The background task starts on first set and stops on close."""
    cache = AsyncLRUCache(ttl=1)

    await cache.set("key1", "value1")

    assert cache._cleanup_task is not None
    assert not cache._cleanup_task.done()

    await asyncio.sleep(1.5)

    assert await cache.get("key1") is None

    await cache.close()
    assert cache._cleanup_task is None


@pytest.mark.asyncio
async def test_stats() -> None:
    cache = AsyncLRUCache(max_size=10, ttl=30)

    await cache.set("key1", "value1")
    await cache.set("key2", "value2")
    await cache.get("key1")
    await cache.get("missing")

    stats = cache.get_stats()

    assert stats["size"] == 2
    assert stats["max_size"] == 10
    assert stats["ttl"] == 30
    assert stats["utilization"] == 0.2
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    await cache.close()
