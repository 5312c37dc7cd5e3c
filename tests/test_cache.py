"""Tests for the cache stores."""
import pytest

from cache import RECOMMENDATIONS, MemoryCacheStore, RedisCacheStore, cache_key


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def setex(self, key, ttl, value):
        raise ConnectionError("redis down")

    async def delete(self, key):
        raise ConnectionError("redis down")


class RecordingRedis:
    def __init__(self):
        self.calls = []

    async def setex(self, key, ttl, value):
        self.calls.append((key, ttl, value))


def test_cache_key_is_namespaced_and_normalized():
    assert cache_key(RECOMMENDATIONS, "42") == "recs:42"
    assert cache_key("author-releases", " Ursula K. Le Guin ") == "author-releases:ursula k. le guin"


async def test_set_then_get_returns_value_repeatedly(memory_cache):
    await memory_cache.set("k", "v", 60)
    assert await memory_cache.get("k") == "v"
    assert await memory_cache.get("k") == "v"


async def test_entries_expire_lazily(memory_cache, clock):
    await memory_cache.set("k", "v", 60)
    clock.advance(59)
    assert await memory_cache.get("k") == "v"
    clock.advance(1)
    assert await memory_cache.get("k") is None
    assert (await memory_cache.stats())["key_count"] == 0


async def test_refresh_overwrites_value_and_ttl(memory_cache, clock):
    await memory_cache.set("k", "old", 10)
    clock.advance(5)
    await memory_cache.set("k", "new", 10)
    clock.advance(8)
    assert await memory_cache.get("k") == "new"


async def test_non_positive_ttl_rejected(memory_cache):
    with pytest.raises(ValueError):
        await memory_cache.set("k", "v", 0)


async def test_json_helpers_round_trip(memory_cache):
    await memory_cache.set_json("k", {"authors": ["A"]}, 60)
    assert await memory_cache.get_json("k") == {"authors": ["A"]}
    assert await memory_cache.get_json("missing") is None


async def test_unreadable_json_is_discarded(memory_cache):
    await memory_cache.set("k", "{not json", 60)
    assert await memory_cache.get_json("k") is None
    assert await memory_cache.get("k") is None


async def test_redis_errors_degrade_to_misses():
    store = RedisCacheStore(BrokenRedis())
    assert await store.get("k") is None
    await store.set("k", "v", 60)
    await store.delete("k")


async def test_redis_set_uses_setex():
    redis = RecordingRedis()
    await RedisCacheStore(redis).set("k", "v", 90)
    assert redis.calls == [("k", 90, "v")]
