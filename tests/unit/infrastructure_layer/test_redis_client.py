"""
Unit Tests for the Redis client facade

The real redis.asyncio client is replaced with AsyncMock so the error
translation and capability detection are tested without a server.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import RedisError

from techtrend_cache.core.exceptions import CacheConnectionError, CacheKeyError
from techtrend_cache.infrastructure.cache.redis_client import (
    OperationExecutor,
    RedisCapabilities,
    RedisClient,
)


@pytest.mark.unit
class TestRedisCapabilities:
    @pytest.mark.parametrize(
        "version,supports_unlink",
        [("7.2.4", True), ("4.0.0", True), ("3.2.12", False), ("6.0", True)],
    )
    def test_unlink_support_by_version(self, version, supports_unlink):
        assert RedisCapabilities.from_version(version).supports_unlink is supports_unlink

    def test_unknown_version_is_conservative(self):
        assert RedisCapabilities.from_version(None) == RedisCapabilities()
        assert RedisCapabilities.from_version("unstable").supports_unlink is False

    async def test_detect_reads_server_info(self):
        client = MagicMock()
        client.info = AsyncMock(return_value={"redis_version": "7.0.11"})

        caps = await RedisCapabilities.detect(client)

        assert caps.supports_unlink is True
        assert caps.server_version == "7.0.11"
        client.info.assert_awaited_once_with("server")

    async def test_detect_failure_falls_back(self):
        client = MagicMock()
        client.info = AsyncMock(side_effect=RedisError("NOPERM"))
        assert await RedisCapabilities.detect(client) == RedisCapabilities()


@pytest.mark.unit
class TestOperationExecutor:
    async def test_set_passes_ttl_and_flags(self):
        client = MagicMock()
        client.set = AsyncMock(return_value=True)

        assert await OperationExecutor(client).set("k", "v", ttl=30, nx=True) is True
        client.set.assert_awaited_once_with("k", "v", ex=30, nx=True, xx=False)

    async def test_set_nx_refused_is_false(self):
        client = MagicMock()
        client.set = AsyncMock(return_value=None)
        assert await OperationExecutor(client).set("k", "v", nx=True) is False

    async def test_redis_error_becomes_cache_key_error(self):
        client = MagicMock()
        client.get = AsyncMock(side_effect=RedisError("LOADING"))

        with pytest.raises(CacheKeyError) as exc_info:
            await OperationExecutor(client).get("k")
        assert exc_info.value.details == {"key": "k"}

    async def test_empty_bulk_calls_skip_redis(self):
        client = MagicMock()
        executor = OperationExecutor(client)

        assert await executor.mget([]) == []
        assert await executor.delete() == 0
        assert await executor.unlink() == 0
        client.mget.assert_not_called()

    async def test_scan_iter_yields_keys(self):
        async def keys(match, count):
            for key in ("ns:a", "ns:b"):
                yield key

        client = MagicMock()
        client.scan_iter = keys

        found = [key async for key in OperationExecutor(client).scan_iter(match="ns:*")]

        assert found == ["ns:a", "ns:b"]


@pytest.mark.unit
class TestRedisClient:
    async def test_commands_before_connect_raise(self, test_settings):
        client = RedisClient(test_settings)

        assert client.is_connected is False
        with pytest.raises(CacheConnectionError):
            await client.get("k")

    async def test_remove_prefers_unlink(self, test_settings):
        client = RedisClient(test_settings)
        client._executor = MagicMock()
        client._executor.unlink = AsyncMock(return_value=2)
        client._executor.delete = AsyncMock(return_value=2)

        client.capabilities = RedisCapabilities(supports_unlink=True)
        await client.remove("a", "b")
        client._executor.unlink.assert_awaited_once_with("a", "b")

        client.capabilities = RedisCapabilities(supports_unlink=False)
        await client.remove("a")
        client._executor.delete.assert_awaited_once_with("a")
