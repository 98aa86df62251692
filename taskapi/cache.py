# taskapi/cache.py

"""
Listing cache: a key-value store with TTL for precomputed task pages.

Three backends share the ``TaskCache`` interface:

- ``RedisTaskCache`` for deployments with a Redis server,
- ``InMemoryTaskCache`` for local development and tests,
- ``NullTaskCache`` when caching is switched off.

None of them raise on backend failures. A cache that cannot be reached
behaves like an empty one: reads miss and writes are dropped.
"""

import asyncio
import json
from datetime import datetime, timedelta
from fnmatch import fnmatchcase
from typing import Any, Optional

import structlog
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from taskapi.schemas import TaskQuery

logger = structlog.get_logger(__name__)

LIST_CACHE_PREFIX = "tasks"
LIST_CACHE_PATTERN = f"{LIST_CACHE_PREFIX}:*"
DEFAULT_TTL_SECONDS = 300


def build_list_cache_key(query: TaskQuery) -> str:
    """Deterministic key for one listing page.

    Built from the normalized query, so ``?limit=500`` and ``?limit=100``
    share an entry.
    """
    status = query.status.value if query.status else "all"
    return (
        f"{LIST_CACHE_PREFIX}:{status}:{query.sort_by.value}:"
        f"{query.sort_order.value}:{query.page}:{query.limit}"
    )


class TaskCache:
    """Interface every cache backend implements."""

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int = DEFAULT_TTL_SECONDS) -> bool:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def delete_pattern(self, pattern: str) -> bool:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class NullTaskCache(TaskCache):
    async def get(self, key):
        return None

    async def set(self, key, value, ttl_seconds=DEFAULT_TTL_SECONDS):
        return False

    async def delete(self, key):
        return True

    async def delete_pattern(self, pattern):
        return True


class InMemoryTaskCache(TaskCache):
    """
    Process-local cache with per-entry expiry.

    Values are stored JSON-encoded, like in Redis, so callers get a fresh
    copy on every read and cannot mutate cached pages by accident.
    """

    def __init__(self, clock=datetime.now):
        self._entries: dict[str, tuple[str, datetime]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, key):
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            raw, expires_at = entry
            if self._clock() >= expires_at:
                logger.debug("Cache entry expired", key=key)
                del self._entries[key]
                return None
            return json.loads(raw)

    async def set(self, key, value, ttl_seconds=DEFAULT_TTL_SECONDS):
        async with self._lock:
            expires_at = self._clock() + timedelta(seconds=ttl_seconds)
            self._entries[key] = (json.dumps(value), expires_at)
            return True

    async def delete(self, key):
        async with self._lock:
            self._entries.pop(key, None)
            return True

    async def delete_pattern(self, pattern):
        async with self._lock:
            doomed = [key for key in self._entries if fnmatchcase(key, pattern)]
            for key in doomed:
                del self._entries[key]
            logger.debug("Cache pattern cleared", pattern=pattern, removed=len(doomed))
            return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisTaskCache(TaskCache):
    """Redis-backed cache; every backend error is logged and swallowed."""

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "RedisTaskCache":
        client = aioredis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password or None,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        logger.info("Redis cache configured", host=settings.redis_host, port=settings.redis_port)
        return cls(client)

    async def get(self, key):
        try:
            raw = await self._client.get(key)
        except (RedisError, OSError) as e:
            logger.error("Cache get error", key=key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry", key=key)
            return None

    async def set(self, key, value, ttl_seconds=DEFAULT_TTL_SECONDS):
        try:
            await self._client.setex(key, ttl_seconds, json.dumps(value))
            return True
        except (RedisError, OSError) as e:
            logger.error("Cache set error", key=key, error=str(e))
            return False

    async def delete(self, key):
        try:
            await self._client.delete(key)
            return True
        except (RedisError, OSError) as e:
            logger.error("Cache delete error", key=key, error=str(e))
            return False

    async def delete_pattern(self, pattern):
        try:
            keys = [key async for key in self._client.scan_iter(match=pattern)]
            if keys:
                await self._client.delete(*keys)
            return True
        except (RedisError, OSError) as e:
            logger.error("Cache pattern clear error", pattern=pattern, error=str(e))
            return False

    async def ping(self):
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self):
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.warning("Error closing Redis connection", error=str(e))


def build_cache(settings) -> TaskCache:
    backend = settings.cache_backend
    if backend == "redis":
        return RedisTaskCache.from_settings(settings)
    if backend == "memory":
        return InMemoryTaskCache()
    return NullTaskCache()
