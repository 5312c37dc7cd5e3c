import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple
from loguru import logger
from redis.asyncio import Redis

# Entry kinds. Entity-scoped namespaces live in the long tier,
# user-scoped ones in the short tier.
AUTHOR_RELEASES = "author-releases"
GENRE_BOOKS = "genre-books"
USER_AUTHORS = "user-authors"
RECOMMENDATIONS = "recs"
IMAGES = "img_cache"


def cache_key(namespace: str, *parts: Any) -> str:
    normalized = [str(p).strip().lower() for p in parts]
    return ":".join([namespace, *normalized])


class CacheStore(ABC):
    """Text key/value store with a per-entry TTL."""

    backend = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    async def ping(self) -> bool:
        return True

    async def stats(self) -> Dict[str, Any]:
        return {}

    async def close(self) -> None:
        pass

    async def get_json(self, key: str) -> Any:
        raw = await self.get(key)
        if raw is None: return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            await self.delete(key)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.set(key, json.dumps(value), ttl_seconds)


def _check_ttl(ttl_seconds: int) -> None:
    if ttl_seconds <= 0:
        raise ValueError(f"Cache TTL must be positive, got {ttl_seconds}")


class RedisCacheStore(CacheStore):
    """
    Redis-backed store. Redis outages degrade to cache misses and
    skipped writes; they never fail a request.
    """

    backend = "redis"

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheStore":
        return cls(Redis.from_url(url, decode_responses=True, encoding="utf-8"))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.client.get(key)
        except Exception as e:
            logger.warning(f"Redis GET error for {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        _check_ttl(ttl_seconds)
        try:
            await self.client.setex(key, ttl_seconds, value)
        except Exception as e:
            logger.warning(f"Redis SET error for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(key)
        except Exception as e:
            logger.warning(f"Redis DEL error for {key}: {e}")

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def stats(self) -> Dict[str, Any]:
        key_count = await self.client.dbsize()
        memory_info = await self.client.info("memory")
        return {"key_count": key_count, "used_memory": memory_info.get("used_memory_human", "N/A")}

    async def close(self) -> None:
        await self.client.aclose()


class MemoryCacheStore(CacheStore):
    """In-process store with lazy expiry. Entries are checked on read; nothing sweeps."""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None: return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        _check_ttl(ttl_seconds)
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def stats(self) -> Dict[str, Any]:
        now = self._clock()
        live = sum(1 for _, expires_at in self._entries.values() if now < expires_at)
        return {"key_count": live, "used_memory": "N/A"}
