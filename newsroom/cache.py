"""Key-value cache for dedup markers and search pages.

The cache is never a source of truth: every consumer tolerates total loss.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class AbstractCache(ABC):
    """Contract shared by the Redis and in-memory caches."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: ...
    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None: ...
    @abstractmethod
    async def exists(self, key: str) -> bool: ...
    @abstractmethod
    async def close(self) -> None: ...


class RedisCache(AbstractCache):
    """Cache backed by Redis with native key expiry."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(aioredis.from_url(url, encoding="utf-8", decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._redis.set(key, value, ex=ttl)

    async def exists(self, key: str) -> bool:
        return bool(await self._redis.exists(key))

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryCache(AbstractCache):
    """Single-process cache for local development and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: dict[str, tuple[str, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (value, self._clock() + ttl)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def close(self) -> None:
        self._entries.clear()


def create_cache(redis_url: Optional[str]) -> AbstractCache:
    """Redis when configured, otherwise the in-memory fallback."""
    if redis_url:
        return RedisCache.from_url(redis_url)
    logger.warning(
        "Using IN-MEMORY cache. This is not suitable for production or multi-worker setups."
    )
    return InMemoryCache()
