"""
Redis-backed mutual exclusion across workers.

A lock is the string key ``lock:<key>`` created with ``SET NX EX``. Its
value is an owner token (``<epoch-ms>_<random hex>``); only the holder of
that token may release it, and the TTL frees the lock if the holder dies.

Release is a GET followed by a conditional DEL. Between the two calls the
lock can expire and be taken by another worker, whose lock would then be
deleted. The window is bounded by the round trip and only opens when the
holder overran its TTL, so the simpler two-command form is used.
"""

import asyncio
import secrets
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from techtrend_cache.config.constants import LOCK_KEY_PREFIX
from techtrend_cache.config.settings import get_settings
from techtrend_cache.core.exceptions import CacheError, LockAcquisitionError
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.infrastructure.cache.redis_client import RedisClient

logger = get_logger(__name__)

T = TypeVar("T")


def generate_token() -> str:
    return f"{int(time.time() * 1000)}_{secrets.token_hex(8)}"


class DistributedLock:
    """
    Token-checked Redis lock.

    Usage:
        lock = DistributedLock(redis_client)

        token = await lock.acquire("warm:stats", ttl=60)
        if token:
            try:
                ...
            finally:
                await lock.release("warm:stats", token)

        async with lock.locked("warm:stats") as acquired:
            if acquired:
                ...
    """

    def __init__(
        self,
        redis_client: RedisClient,
        retry_interval: float | None = None,
        max_wait_time: float | None = None,
        default_ttl: int | None = None,
    ):
        lock_settings = get_settings().lock
        self._redis = redis_client
        self.retry_interval = retry_interval if retry_interval is not None else lock_settings.LOCK_RETRY_INTERVAL
        self.max_wait_time = max_wait_time if max_wait_time is not None else lock_settings.LOCK_MAX_WAIT_TIME
        self.default_ttl = default_ttl or lock_settings.LOCK_DEFAULT_TTL

    @staticmethod
    def _lock_key(key: str) -> str:
        return f"{LOCK_KEY_PREFIX}:{key}"

    async def try_acquire(self, key: str, ttl: int | None = None) -> str | None:
        """
        Try once to take the lock, letting Redis failures through.

        Returns:
            The owner token, or None if another holder has the lock

        Raises:
            CacheError: If Redis could not be reached
        """
        token = generate_token()
        acquired = await self._redis.set(self._lock_key(key), token, ttl=ttl or self.default_ttl, nx=True)
        if not acquired:
            return None
        logger.debug("Lock acquired", stage="LOCK.ACQUIRE", key=key)
        return token

    async def acquire(self, key: str, ttl: int | None = None) -> str | None:
        """
        Try once to take the lock.

        Returns:
            The owner token, or None if the lock is held (or Redis failed)
        """
        try:
            return await self.try_acquire(key, ttl)
        except CacheError as e:
            logger.warning("Lock acquire failed", stage="LOCK.ACQUIRE", key=key, error=str(e))
            return None

    async def acquire_with_wait(self, key: str, ttl: int | None = None) -> str | None:
        """
        Retry acquire every ``retry_interval`` until ``max_wait_time`` elapses.

        A Redis failure ends the wait at once; only contention is waited out.

        Returns:
            The owner token, or None if the wait budget ran out or Redis failed
        """
        deadline = time.monotonic() + self.max_wait_time
        while True:
            try:
                token = await self.try_acquire(key, ttl)
            except CacheError as e:
                logger.warning("Lock wait aborted", stage="LOCK.WAIT", key=key, error=str(e))
                return None
            if token is not None:
                return token
            if time.monotonic() + self.retry_interval > deadline:
                logger.debug("Lock wait timed out", stage="LOCK.WAIT", key=key, waited=self.max_wait_time)
                return None
            await asyncio.sleep(self.retry_interval)

    async def release(self, key: str, token: str) -> bool:
        """
        Delete the lock if it is still owned by ``token``.

        Returns:
            True if this call removed the lock
        """
        lock_key = self._lock_key(key)
        try:
            current = await self._redis.get(lock_key)
            if current != token:
                logger.warning(
                    "Lock not released: owned by another holder or expired",
                    stage="LOCK.RELEASE",
                    key=key,
                )
                return False
            await self._redis.delete(lock_key)
        except CacheError as e:
            logger.warning("Lock release failed", stage="LOCK.RELEASE", key=key, error=str(e))
            return False

        logger.debug("Lock released", stage="LOCK.RELEASE", key=key)
        return True

    async def is_locked(self, key: str) -> bool:
        try:
            return await self._redis.exists(self._lock_key(key)) > 0
        except CacheError:
            return False

    @asynccontextmanager
    async def locked(self, key: str, ttl: int | None = None, wait: bool = True) -> AsyncIterator[bool]:
        """
        Hold the lock for the body of an ``async with`` block.

        Yields True when the lock was obtained. The body still runs when it
        was not, so callers decide whether to skip their work.
        """
        token = await (self.acquire_with_wait(key, ttl) if wait else self.acquire(key, ttl))
        try:
            yield token is not None
        finally:
            if token is not None:
                await self.release(key, token)

    async def execute_with_lock(
        self, key: str, fn: Callable[[], Awaitable[T]], ttl: int | None = None
    ) -> T:
        """
        Run ``fn`` while holding the lock.

        Raises:
            LockAcquisitionError: If the lock is not obtained within max_wait_time
        """
        token = await self.acquire_with_wait(key, ttl)
        if token is None:
            raise LockAcquisitionError(
                message=f"Could not acquire lock for {key}",
                details={"key": key, "max_wait_time": self.max_wait_time},
            )
        try:
            return await fn()
        finally:
            await self.release(key, token)
