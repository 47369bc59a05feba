"""Redis cache service implementation."""

import asyncio
import json
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import redis
import redis.asyncio as aioredis

from medscribe.logging import setup_logging

from .interfaces import CacheService

logger = setup_logging()

LOCK_POLL_INTERVAL_SECONDS = 0.1

# Deletes the lock only while it still holds the caller's token.
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Resets the expiry only while the lock still holds the caller's token.
_EXTEND_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisCacheService(CacheService):
    """Cache service implementation using Redis."""

    def __init__(self, client: aioredis.Redis, default_ttl_seconds: int | None = None):
        self._client = client
        self._default_ttl = default_ttl_seconds

    async def get(self, key: str) -> Any | None:
        """
        Retrieves a value from Redis cache.

        Args:
            key: The cache key.

        Returns:
            The decoded value, or None on a miss or a backend failure.
        """
        try:
            value = await self._client.get(key)
        except redis.RedisError:
            logger.exception("Redis get failed", extra={"key": key})
            return None
        if value is None:
            return None
        try:
            decoded = json.loads(value)
        except ValueError:
            logger.warning("Discarding undecodable cache entry", extra={"key": key})
            return None
        logger.info("Cache hit", extra={"key": key})
        return decoded

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """
        Stores a value in Redis cache with TTL.

        Args:
            key: The cache key.
            value: The value to cache, JSON-serializable.
            ttl_seconds: Expiry, or the default TTL when None.

        Returns:
            True if stored, False on a backend failure.
        """
        ttl = ttl_seconds or self._default_ttl
        try:
            await self._client.set(key, json.dumps(value, default=str), ex=ttl)
        except (redis.RedisError, TypeError, ValueError):
            logger.exception("Redis set failed", extra={"key": key})
            return False
        logger.info("Cache set", extra={"key": key, "ttl": ttl})
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self._client.delete(key)
            return True
        except redis.RedisError:
            logger.exception("Redis delete failed", extra={"key": key})
            return False

    async def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        try:
            async for key in self._client.scan_iter(match=pattern, count=500):
                deleted += await self._client.delete(key)
        except redis.RedisError:
            logger.exception("Redis pattern delete failed", extra={"pattern": pattern})
        return deleted

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl_seconds: int | None = None,
    ) -> Any:
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await factory()
        if value is not None:
            await self.set(key, value, ttl_seconds)
        return value

    async def increment(self, key: str, ttl_seconds: int | None = None) -> int:
        try:
            value = await self._client.incr(key)
            if ttl_seconds:
                await self._client.expire(key, ttl_seconds)
            return int(value)
        except redis.RedisError:
            logger.exception("Redis increment failed", extra={"key": key})
            return 0

    async def acquire_lock(
        self, name: str, ttl_seconds: int, wait_seconds: float = 0
    ) -> str | None:
        """
        Acquires a lock with SET NX EX, polling until ``wait_seconds`` elapse.

        Returns:
            The ownership token, or None if the lock is held elsewhere or
            Redis is unreachable.
        """
        lock_key = f"lock:{name}"
        token = uuid.uuid4().hex
        deadline = time.monotonic() + wait_seconds

        while True:
            try:
                if await self._client.set(lock_key, token, ex=ttl_seconds, nx=True):
                    logger.info("Lock acquired", extra={"lock": name})
                    return token
            except redis.RedisError:
                logger.exception("Redis lock acquire failed", extra={"lock": name})
                return None
            if time.monotonic() >= deadline:
                logger.warning(
                    "Lock not acquired", extra={"lock": name, "waited": wait_seconds}
                )
                return None
            await asyncio.sleep(LOCK_POLL_INTERVAL_SECONDS)

    async def extend_lock(self, name: str, token: str, ttl_seconds: int) -> bool:
        try:
            extended = await self._client.eval(
                _EXTEND_LOCK_SCRIPT, 1, f"lock:{name}", token, ttl_seconds
            )
        except redis.RedisError:
            logger.exception("Redis lock extend failed", extra={"lock": name})
            return False
        return extended == 1

    async def release_lock(self, name: str, token: str) -> bool:
        try:
            released = await self._client.eval(_RELEASE_LOCK_SCRIPT, 1, f"lock:{name}", token)
        except redis.RedisError:
            logger.exception("Redis lock release failed", extra={"lock": name})
            return False
        if not released:
            logger.warning("Lock was no longer owned at release", extra={"lock": name})
        return released == 1
