"""
Redis Client with Connection Pooling

Architecture:
    RedisClient (Public API, shared by every cache namespace)
        ├── ConnectionManager (Connection lifecycle, retried with tenacity)
        ├── RedisCapabilities (Server features, detected once at connect)
        ├── OperationExecutor (Command execution with error handling)
        └── HealthMonitor (Ping latency and pool metrics)

All caches share one RedisClient, and so one connection pool. Commands
raise CacheKeyError on failure; the cache layers above decide whether
that becomes a miss, a fallback, or an error for the caller.
"""

import time
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from techtrend_cache.config.constants import SCAN_COUNT
from techtrend_cache.config.settings import Settings, get_settings
from techtrend_cache.core.exceptions import CacheConnectionError, CacheKeyError
from techtrend_cache.core.logging.logger import get_logger
from techtrend_cache.core.resilience.retry import create_retry_decorator

logger = get_logger(__name__)

# UNLINK was added in Redis 4.0
_UNLINK_MIN_VERSION = (4, 0, 0)


# =============================================================================
# LAYER 1: CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages Redis connection lifecycle and pooling.

    Pool Configuration:
    - Max connections: REDIS_MAX_CONNECTIONS
    - Socket timeout: 5s
    - Health check interval: 30s
    - Decode responses: True (values come back as str)
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._is_connected = False

    def _build_pool(self) -> ConnectionPool:
        cfg = self._settings.redis
        common = dict(
            max_connections=cfg.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=cfg.REDIS_SOCKET_CONNECT_TIMEOUT,
            socket_timeout=cfg.REDIS_SOCKET_TIMEOUT,
            retry_on_timeout=True,
            health_check_interval=cfg.REDIS_HEALTH_CHECK_INTERVAL,
            decode_responses=True,
        )
        if cfg.REDIS_URL:
            return ConnectionPool.from_url(cfg.REDIS_URL, **common)
        return ConnectionPool(
            host=cfg.REDIS_HOST,
            port=cfg.REDIS_PORT,
            db=cfg.REDIS_DB,
            password=cfg.REDIS_PASSWORD,
            **common,
        )

    async def connect(self) -> redis.Redis:
        """
        Establish connection to Redis with connection pooling.

        STAGE-REDIS.2: Connection establishment

        Returns:
            redis.Redis: Connected Redis client

        Raises:
            CacheConnectionError: If connection fails
        """
        if self._is_connected and self._client:
            return self._client

        cfg = self._settings.redis
        try:
            self._pool = self._build_pool()
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()

            self._is_connected = True

            logger.info(
                "Redis connected successfully",
                stage="REDIS.2",
                host=cfg.REDIS_HOST if not cfg.REDIS_URL else None,
                url_configured=bool(cfg.REDIS_URL),
                max_connections=cfg.REDIS_MAX_CONNECTIONS,
            )

            return self._client

        except (ConnectionError, TimeoutError) as e:
            logger.error("Failed to connect to Redis", stage="REDIS.2", error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={"host": cfg.REDIS_HOST, "port": cfg.REDIS_PORT},
            )

    async def disconnect(self) -> None:
        """
        Close Redis connection and pool.

        STAGE-REDIS.3: Connection cleanup
        """
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        self._is_connected = False

        logger.info("Redis disconnected", stage="REDIS.3")

    async def ping(self) -> bool:
        """Return True if the server answers PING."""
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# LAYER 2: SERVER CAPABILITIES
# =============================================================================


@dataclass(frozen=True)
class RedisCapabilities:
    """
    Optional server features, decided once per connection.

    Callers branch on these flags instead of probing the client on every
    call.
    """

    supports_unlink: bool = False
    server_version: str | None = None

    @classmethod
    def from_version(cls, version: str | None) -> "RedisCapabilities":
        if not version:
            return cls()
        try:
            parts = tuple(int(p) for p in version.split(".")[:3])
        except ValueError:
            return cls(server_version=version)
        return cls(supports_unlink=parts >= _UNLINK_MIN_VERSION, server_version=version)

    @classmethod
    async def detect(cls, client: redis.Redis) -> "RedisCapabilities":
        """Read INFO server and derive capabilities (conservative on error)."""
        try:
            info = await client.info("server")
        except RedisError as e:
            logger.warning("Could not read Redis server info", stage="REDIS.CAPS", error=str(e))
            return cls()
        return cls.from_version(str(info.get("redis_version", "")) or None)


# =============================================================================
# LAYER 3: OPERATION EXECUTOR
# =============================================================================


class OperationExecutor:
    """
    Runs commands against the pooled client.

    Every command goes through ``_call``: a RedisError is logged under
    ``REDIS.<COMMAND>`` and re-raised as CacheKeyError carrying the
    key(s) involved. Bulk commands with nothing to do return without a
    round-trip.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    async def _call(self, command: str, awaitable: Awaitable[Any], **details: Any) -> Any:
        try:
            return await awaitable
        except RedisError as e:
            logger.error(f"Redis {command} failed", stage=f"REDIS.{command}", error=str(e), **details)
            raise CacheKeyError(message=f"Redis {command} failed: {e}", details=details) from e

    async def get(self, key: str) -> str | None:
        return await self._call("GET", self._redis.get(key), key=key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return await self._call("MGET", self._redis.mget(keys), count=len(keys))

    async def set(
        self, key: str, value: str, ttl: int | None = None, nx: bool = False, xx: bool = False
    ) -> bool:
        """
        SET with optional expiry.

        Returns False when an NX/XX condition prevented the write.
        """
        written = await self._call("SET", self._redis.set(key, value, ex=ttl, nx=nx, xx=xx), key=key)
        return bool(written)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call("DEL", self._redis.delete(*keys), keys=list(keys[:10]))

    async def unlink(self, *keys: str) -> int:
        """Like delete, but the server frees memory in the background."""
        if not keys:
            return 0
        return await self._call("UNLINK", self._redis.unlink(*keys), keys=list(keys[:10]))

    async def exists(self, *keys: str) -> int:
        return await self._call("EXISTS", self._redis.exists(*keys), keys=list(keys))

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._call("EXPIRE", self._redis.expire(key, ttl), key=key))

    async def ttl(self, key: str) -> int:
        """Seconds left; -1 when the key has no expiry, -2 when it is absent."""
        return await self._call("TTL", self._redis.ttl(key), key=key)

    async def scan_iter(self, match: str, count: int = SCAN_COUNT) -> AsyncIterator[str]:
        """
        Walk the keyspace with a SCAN cursor.

        STAGE-REDIS.SCAN: KEYS is never issued, so large namespaces do not
        block the server.
        """
        try:
            async for key in self._redis.scan_iter(match=match, count=count):
                yield key
        except RedisError as e:
            logger.error("Redis SCAN failed", stage="REDIS.SCAN", pattern=match, error=str(e))
            raise CacheKeyError(message=f"Redis SCAN failed: {e}", details={"pattern": match}) from e

    async def info(self, section: str | None = None) -> dict[str, Any]:
        pending = self._redis.info(section) if section else self._redis.info()
        return await self._call("INFO", pending, section=section)

    async def config_get(self, parameter: str) -> dict[str, str]:
        return await self._call("CONFIG", self._redis.config_get(parameter), parameter=parameter)


# =============================================================================
# LAYER 4: HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """
    Monitors Redis health and connection pool metrics.

    Metrics Tracked:
    - Connection status
    - Ping latency
    - Pool size and utilization (warning above 80%)
    """

    def __init__(self, connection_manager: ConnectionManager, settings: Settings):
        self._conn_mgr = connection_manager
        self._settings = settings

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Redis connection.

        STAGE-REDIS.HEALTH: Redis health check
        """
        health = {
            "status": "healthy",
            "connected": self._conn_mgr.is_connected(),
            "pool_size": 0,
            "pool_utilization_pct": 0,
            "pool_warning": False,
            "ping_latency_ms": None,
        }

        try:
            client = self._conn_mgr.get_client()
            if not client:
                health["status"] = "unhealthy"
                health["connected"] = False
                health["error"] = "Client not initialized"
                return health

            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)

            pool = self._conn_mgr.get_pool()
            if pool:
                health["pool_size"] = pool.max_connections
                if hasattr(pool, "_available_connections") and hasattr(pool, "_in_use_connections"):
                    in_use = len(pool._in_use_connections)
                    utilization = 100.0 * in_use / pool.max_connections
                    health["pool_utilization_pct"] = round(utilization, 1)
                    if utilization > 80:
                        health["pool_warning"] = True
                        logger.warning(
                            "Redis pool utilization high",
                            pool_utilization=utilization,
                            max_connections=pool.max_connections,
                        )

        except (RedisError, OSError) as e:
            health["status"] = "unhealthy"
            health["connected"] = False
            health["error"] = str(e)

        return health


# =============================================================================
# LAYER 5: PUBLIC API
# =============================================================================


class RedisClient:
    """
    Async Redis client shared by every cache in the process.

    Usage:
        client = RedisClient()
        await client.connect()

        await client.set("key", "value", ttl=3600)
        value = await client.get("key")
        if client.capabilities.supports_unlink:
            await client.unlink("key")

        await client.disconnect()
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize Redis client.

        STAGE-REDIS.1: Client initialization
        """
        self._settings = settings or get_settings()

        self._conn_mgr = ConnectionManager(self._settings)
        self._executor: OperationExecutor | None = None
        self._health_monitor = HealthMonitor(self._conn_mgr, self._settings)
        self.capabilities = RedisCapabilities()

    async def connect(self) -> None:
        """
        Connect (retrying transient failures) and detect server capabilities.

        Raises:
            CacheConnectionError: If every attempt fails
        """
        attempts = self._settings.redis.REDIS_CONNECT_RETRIES
        connect = create_retry_decorator(max_attempts=attempts)(self._conn_mgr.connect)
        client = await connect()

        self._executor = OperationExecutor(client)
        self.capabilities = await RedisCapabilities.detect(client)

        logger.info(
            "Redis capabilities detected",
            stage="REDIS.CAPS",
            server_version=self.capabilities.server_version,
            supports_unlink=self.capabilities.supports_unlink,
        )

    async def disconnect(self) -> None:
        await self._conn_mgr.disconnect()
        self._executor = None

    async def ping(self) -> bool:
        return await self._conn_mgr.ping()

    @property
    def is_connected(self) -> bool:
        return self._conn_mgr.is_connected() and self._executor is not None

    def _exec(self) -> OperationExecutor:
        if self._executor is None:
            raise CacheConnectionError(
                message="Redis client is not connected",
                details={"hint": "await RedisClient.connect() during startup"},
            )
        return self._executor

    async def get(self, key: str) -> str | None:
        return await self._exec().get(key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        return await self._exec().mget(keys)

    async def set(
        self, key: str, value: str, ttl: int | None = None, nx: bool = False, xx: bool = False
    ) -> bool:
        return await self._exec().set(key, value, ttl=ttl, nx=nx, xx=xx)

    async def delete(self, *keys: str) -> int:
        return await self._exec().delete(*keys)

    async def unlink(self, *keys: str) -> int:
        return await self._exec().unlink(*keys)

    async def remove(self, *keys: str) -> int:
        """Delete keys with UNLINK when the server supports it, DEL otherwise."""
        if self.capabilities.supports_unlink:
            return await self.unlink(*keys)
        return await self.delete(*keys)

    async def exists(self, *keys: str) -> int:
        return await self._exec().exists(*keys)

    async def expire(self, key: str, ttl: int) -> bool:
        return await self._exec().expire(key, ttl)

    async def ttl(self, key: str) -> int:
        return await self._exec().ttl(key)

    def scan_iter(self, match: str, count: int = SCAN_COUNT) -> AsyncIterator[str]:
        return self._exec().scan_iter(match=match, count=count)

    async def info(self, section: str | None = None) -> dict[str, Any]:
        return await self._exec().info(section)

    async def config_get(self, parameter: str) -> dict[str, str]:
        return await self._exec().config_get(parameter)

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()
