"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import asyncio
import fnmatch
import time
from typing import Any

import pytest

from techtrend_cache.core.exceptions import CacheConnectionError
from techtrend_cache.infrastructure.cache.redis_client import RedisCapabilities

# ============================================================================
# Pytest Configuration
# ============================================================================

# pytest-asyncio runs in auto mode (see pyproject.toml), so async tests and
# fixtures need no explicit marker.


# ============================================================================
# In-Memory Redis
# ============================================================================


class InMemoryRedis:
    """
    In-memory stand-in for RedisClient.

    Implements the facade's command surface (strings, TTLs, SCAN, INFO,
    CONFIG GET, health) on a dict. Set ``fail_with`` to an exception to make
    every command raise it, which simulates a Redis outage.
    """

    def __init__(self, supports_unlink: bool = True):
        self.data: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}
        self.capabilities = RedisCapabilities(
            supports_unlink=supports_unlink, server_version="7.2.0" if supports_unlink else "3.2.0"
        )
        self.connected = False
        self.fail_with: Exception | None = None
        self.latency_ms = 0.5
        self.used_memory = 1024 * 1024
        self.used_memory_peak = 2 * 1024 * 1024
        self.maxmemory = 100 * 1024 * 1024
        self.config_available = True
        self.calls: list[str] = []

    # -- helpers -------------------------------------------------------------

    def _check(self, command: str) -> None:
        self.calls.append(command)
        if self.fail_with is not None:
            raise self.fail_with

    def _alive(self, key: str) -> bool:
        deadline = self.expires_at.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.data

    def count(self, command: str) -> int:
        return self.calls.count(command)

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        self._check("connect")
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def ping(self) -> bool:
        self._check("ping")
        return True

    @property
    def is_connected(self) -> bool:
        return self.connected

    # -- strings -------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        self._check("get")
        return self.data.get(key) if self._alive(key) else None

    async def mget(self, keys: list[str]) -> list[str | None]:
        self._check("mget")
        return [self.data.get(key) if self._alive(key) else None for key in keys]

    async def set(self, key: str, value: str, ttl: int | None = None, nx: bool = False, xx: bool = False) -> bool:
        self._check("set")
        exists = self._alive(key)
        if (nx and exists) or (xx and not exists):
            return False
        self.data[key] = value
        if ttl:
            self.expires_at[key] = time.monotonic() + ttl
        else:
            self.expires_at.pop(key, None)
        return True

    def _drop(self, keys: tuple[str, ...]) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self.data.pop(key, None)
            self.expires_at.pop(key, None)
        return removed

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        return self._drop(keys)

    async def unlink(self, *keys: str) -> int:
        self._check("unlink")
        return self._drop(keys)

    async def remove(self, *keys: str) -> int:
        if self.capabilities.supports_unlink:
            return await self.unlink(*keys)
        return await self.delete(*keys)

    async def exists(self, *keys: str) -> int:
        self._check("exists")
        return sum(1 for key in keys if self._alive(key))

    async def expire(self, key: str, ttl: int) -> bool:
        self._check("expire")
        if not self._alive(key):
            return False
        self.expires_at[key] = time.monotonic() + ttl
        return True

    async def ttl(self, key: str) -> int:
        self._check("ttl")
        if not self._alive(key):
            return -2
        deadline = self.expires_at.get(key)
        if deadline is None:
            return -1
        return max(0, int(deadline - time.monotonic()))

    # -- keyspace ------------------------------------------------------------

    async def _scan(self, match: str, count: int):
        self._check("scan")
        for key in list(self.data):
            if self._alive(key) and fnmatch.fnmatchcase(key, match):
                await asyncio.sleep(0)
                yield key

    def scan_iter(self, match: str, count: int = 100):
        return self._scan(match, count)

    # -- server --------------------------------------------------------------

    async def info(self, section: str | None = None) -> dict[str, Any]:
        self._check("info")
        return {
            "used_memory": self.used_memory,
            "used_memory_peak": self.used_memory_peak,
            "mem_fragmentation_ratio": 1.25,
            "redis_version": self.capabilities.server_version,
        }

    async def config_get(self, parameter: str) -> dict[str, str]:
        self._check("config_get")
        if not self.config_available:
            raise CacheConnectionError(message="CONFIG disabled")
        return {parameter: str(self.maxmemory)}

    async def health_check(self) -> dict[str, Any]:
        if self.fail_with is not None:
            return {"status": "unhealthy", "connected": False, "ping_latency_ms": None, "error": str(self.fail_with)}
        return {"status": "healthy", "connected": True, "ping_latency_ms": self.latency_ms, "pool_size": 50}


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def in_memory_redis_client():
    """In-memory RedisClient replacement (UNLINK supported)."""
    return InMemoryRedis()


@pytest.fixture
def legacy_redis_client():
    """In-memory RedisClient replacement for a server without UNLINK."""
    return InMemoryRedis(supports_unlink=False)


@pytest.fixture
def redis_outage():
    """Connection error used to simulate Redis being down."""
    return CacheConnectionError(message="Connection refused", details={"host": "localhost"})


@pytest.fixture
def test_settings():
    """
    Settings with short lock/poll timings so concurrency tests run fast.

    Built from explicit values only; no .env file is read.
    """
    from techtrend_cache.config.settings import Settings

    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        CACHE_NAMESPACE="@techtrend/cache",
        LOCK_RETRY_INTERVAL=0.01,
        LOCK_MAX_WAIT_TIME=1.0,
        LOCK_POLL_ATTEMPTS=10,
        LOCK_POLL_INTERVAL=0.2,
        BATCH_COOLDOWN_SECONDS=0,
        WARMER_LOOP_INTERVAL=600,
        MEMORY_CHECK_INTERVAL=60,
    )


@pytest.fixture
async def task_runner():
    """Background runner drained at teardown so no task outlives its test."""
    from techtrend_cache.core.background import BackgroundTaskRunner

    runner = BackgroundTaskRunner(name="test")
    yield runner
    await runner.shutdown(timeout=1.0)
