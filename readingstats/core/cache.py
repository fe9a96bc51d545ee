"""Cache backends for derived views (statistics, ranks, leaderboards).

Entries are never updated in place: writers call ``invalidate`` with a key
prefix and the next reader recomputes.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from readingstats.core.config import settings

logger = logging.getLogger(__name__)


class CacheBackend:
    """Abstract cache backend interface."""

    async def get(self, key: str) -> Any | None:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        raise NotImplementedError

    async def invalidate(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``. Returns the number removed."""
        raise NotImplementedError

    async def close(self) -> None:
        pass

    async def remember(
        self,
        key: str,
        ttl: int | None,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value for ``key`` or compute, store and return it."""
        value = await self.get(key)
        if value is not None:
            return value
        value = await factory()
        await self.set(key, value, ttl)
        return value


class InMemoryBackend(CacheBackend):
    """Process-local cache for development and tests."""

    def __init__(self):
        self._cache: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            if entry["expires"] and datetime.now(timezone.utc) > entry["expires"]:
                del self._cache[key]
                return None

            return entry["value"]

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        async with self._lock:
            expires = None
            if ttl:
                expires = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = {"value": value, "expires": expires}

    async def invalidate(self, prefix: str) -> int:
        async with self._lock:
            matching = [key for key in self._cache if key.startswith(prefix)]
            for key in matching:
                del self._cache[key]
            return len(matching)

    def __len__(self) -> int:
        return len(self._cache)


class RedisBackend(CacheBackend):
    """Redis cache backend. Values are stored as JSON."""

    def __init__(self, url: str, key_prefix: str = ""):
        self.url = url
        self.key_prefix = key_prefix
        self._redis: redis.Redis | None = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.url, decode_responses=True)
        return self._redis

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client().get(self.key_prefix + key)
        except RedisError as e:
            logger.warning("Cache get failed for key %s: %s", key, e)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._client().set(
                self.key_prefix + key,
                json.dumps(value, default=str),
                ex=ttl or None,
            )
        except RedisError as e:
            logger.warning("Cache set failed for key %s: %s", key, e)

    async def invalidate(self, prefix: str) -> int:
        client = self._client()
        removed = 0
        try:
            async for key in client.scan_iter(match=f"{self.key_prefix}{prefix}*"):
                removed += await client.delete(key)
        except RedisError as e:
            logger.warning("Cache invalidate failed for prefix %s: %s", prefix, e)
        return removed

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_cache() -> CacheBackend:
    """Build the cache backend selected in settings."""
    if settings.cache_backend == "redis":
        logger.info("Using redis cache backend at %s", settings.redis_url)
        return RedisBackend(settings.redis_url, settings.cache_key_prefix)
    return InMemoryBackend()


cache = create_cache()


def get_cache() -> CacheBackend:
    """Dependency that provides the shared cache backend."""
    return cache
