"""
Redis connection handling and distributed locks.
"""

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .config import get_settings

logger = logging.getLogger(__name__)

# Only delete the key if we still own it
_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
else
    return 0
end
"""


class LockKeys:
    """Builders for lock names."""

    @staticmethod
    def reminder_sweep() -> str:
        return "lock:reminders:sweep"


class RedisCache:
    """Redis connection manager."""

    def __init__(self, url: Optional[str] = None):
        self.url = url
        self.client: Optional[Redis] = None
        self.pool: Optional[redis.ConnectionPool] = None

    async def initialize(self) -> None:
        """Create the connection pool and check the server answers."""
        settings = get_settings()

        self.pool = redis.ConnectionPool.from_url(
            self.url or settings.redis_url,
            max_connections=settings.redis_max_connections,
            retry_on_timeout=True,
            health_check_interval=30
        )
        self.client = Redis(connection_pool=self.pool)

        try:
            await self.client.ping()
        except RedisError as e:
            logger.error("Failed to connect to Redis: %s", e)
            await self.close()
            raise
        logger.info("Redis connection initialized")

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None
        if self.pool:
            await self.pool.disconnect()
            self.pool = None


class DistributedLock:
    """Distributed lock implementation using Redis (SET NX EX, owner-checked release)."""

    def __init__(self, cache: RedisCache, key: str, timeout: int = 30):
        """
        Args:
            cache: Connected Redis cache
            key: Lock key
            timeout: Seconds before the lock expires on its own
        """
        self.cache = cache
        self.key = key
        self.timeout = timeout
        self.identifier = secrets.token_hex(16)

    async def acquire(self, blocking: bool = True, wait_timeout: Optional[float] = None) -> bool:
        """
        Try to take the lock.

        Returns:
            True if the lock is now held by this instance
        """
        if not self.cache.client:
            return False

        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_timeout if wait_timeout else None

        while True:
            try:
                acquired = await self.cache.client.set(self.key, self.identifier, nx=True, ex=self.timeout)
            except RedisError as e:
                logger.warning(f"Failed to acquire lock {self.key}: {e}")
                return False

            if acquired:
                return True
            if not blocking:
                return False
            if deadline is not None and loop.time() >= deadline:
                return False
            await asyncio.sleep(0.1)

    async def release(self) -> bool:
        if not self.cache.client:
            return False

        try:
            result = await self.cache.client.eval(_RELEASE_SCRIPT, 1, self.key, self.identifier)
        except RedisError as e:
            logger.warning(f"Failed to release lock {self.key}: {e}")
            return False
        return bool(result)


@asynccontextmanager
async def try_lock(redis_cache: RedisCache, key: str, timeout: int = 30):
    """
    Non-blocking lock; yields whether it was acquired.

    Usage:
        async with try_lock(redis_cache, LockKeys.reminder_sweep()) as acquired:
            if acquired:
                ...
    """
    lock = DistributedLock(redis_cache, key, timeout)
    acquired = await lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            await lock.release()
