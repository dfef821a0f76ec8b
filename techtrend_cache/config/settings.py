#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
TechTrend cache and batch-loading core. Every tunable number used by the
caches, the circuit breaker, the distributed lock, the batch optimizer,
the cache warmer and the memory optimizer is declared here.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Per-cache TTL overrides without code changes
- Easy testing with override mechanisms
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis connection configuration.

    STAGE-0.1: Redis connection configuration

    One shared connection pool serves every cache namespace; caches never
    open their own pools.
    """

    REDIS_URL: str | None = Field(default=None, description="Redis connection string (wins over host/port)")
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: int = Field(default=5, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_CONNECT_RETRIES: int = Field(default=3, description="Connection attempts before giving up")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache namespaces and TTL policy.

    STAGE-2: Cache TTL configuration

    Different content types get different TTLs: search results go stale
    fastest, aggregate stats slowest.
    """

    CACHE_NAMESPACE: str = Field(default="@techtrend/cache", description="Root key namespace")
    CACHE_DEFAULT_TTL: int = Field(default=3600, description="Default Redis TTL (1 hour)")

    # L1 memory cache
    CACHE_MEMORY_MAX_SIZE: int = Field(default=1000, description="Memory cache max entries")
    CACHE_MEMORY_TTL: int = Field(default=60, description="Memory cache default TTL")
    CACHE_MEMORY_CLEANUP_INTERVAL: int = Field(default=60, description="Expired-entry sweep interval")

    # DataLoader two-layer cache
    CACHE_LOADER_MEMORY_MAX_SIZE: int = Field(default=500, description="DataLoader L1 max entries")
    CACHE_LOADER_L1_TTL: int = Field(default=30, description="DataLoader L1 TTL")
    CACHE_LOADER_L2_TTL: int = Field(default=60, description="DataLoader L2 TTL")

    # Domain caches
    CACHE_STATS_TTL: int = Field(default=3600, description="Stats cache TTL (1 hour)")
    CACHE_STATS_MAX_TTL: int = Field(default=21600, description="Upper bound for custom stats TTL (6 hours)")
    CACHE_TRENDS_TTL: int = Field(default=1800, description="Trends cache TTL (30 minutes)")
    CACHE_SEARCH_TTL: int = Field(default=300, description="Search cache TTL (5 minutes)")
    CACHE_TAGS_TTL: int = Field(default=1800, description="Tag cache TTL (30 minutes)")
    CACHE_FILTERS_TTL: int = Field(default=1800, description="Filter cache TTL (30 minutes)")
    CACHE_ARTICLE_DETAIL_TTL: int = Field(default=1800, description="Article detail cache TTL (30 minutes)")

    # Stale-while-revalidate
    CACHE_SWR_TTL: int = Field(default=900, description="SWR hard expiry (15 minutes)")
    CACHE_SWR_STALE_TIME: int = Field(default=300, description="SWR freshness window (5 minutes)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CircuitBreakerSettings(BaseSettings):
    """
    Circuit breaker configuration for Redis failure isolation.

    STAGE-CB: Circuit breaker thresholds
    """

    CB_FAILURE_THRESHOLD: int = Field(default=5, description="Failures before opening circuit")
    CB_RECOVERY_TIMEOUT: int = Field(default=60, description="Seconds before attempting recovery")
    CB_HALF_OPEN_REQUESTS: int = Field(default=3, description="Successes in half-open to close circuit")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LockSettings(BaseSettings):
    """
    Distributed lock and stampede-protection timing.

    STAGE-LOCK: Lock configuration
    """

    LOCK_DEFAULT_TTL: int = Field(default=30, description="Lock TTL safety net in seconds")
    LOCK_RETRY_INTERVAL: float = Field(default=0.05, description="Poll interval while waiting for a lock")
    LOCK_MAX_WAIT_TIME: float = Field(default=5.0, description="Maximum time to wait for a lock")
    LOCK_POLL_ATTEMPTS: int = Field(default=10, description="Cache polls while another worker fills a key")
    LOCK_POLL_INTERVAL: float = Field(default=0.2, description="Interval between cache polls")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class BatchOptimizerSettings(BaseSettings):
    """
    Adaptive DataLoader batch sizing.

    STAGE-OPT: Batch optimizer configuration
    """

    BATCH_MIN_SIZE: int = Field(default=10, description="Smallest allowed batch")
    BATCH_MAX_SIZE: int = Field(default=200, description="Largest allowed batch")
    BATCH_INITIAL_SIZE: int = Field(default=50, description="Starting batch size")
    BATCH_STEP_UP: int = Field(default=10, description="Increment when latency has headroom")
    BATCH_STEP_DOWN: int = Field(default=20, description="Decrement when P99 exceeds target")
    BATCH_TARGET_P95_MS: float = Field(default=100.0, description="Target P95 latency (ms)")
    BATCH_TARGET_P99_MS: float = Field(default=200.0, description="Target P99 latency (ms)")
    BATCH_COOLDOWN_SECONDS: float = Field(default=5.0, description="Minimum time between adjustments")
    BATCH_SAMPLE_WINDOW: int = Field(default=100, description="Samples per evaluation window")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class WarmerSettings(BaseSettings):
    """
    Cache warming schedule.

    STAGE-WARM: Cache warmer configuration
    """

    WARMER_ENABLED: bool = Field(default=True, description="Enable startup and periodic warming")
    WARMER_LOCK_TTL: int = Field(default=300, description="Startup warming lock TTL (5 minutes)")
    WARMER_LOOP_INTERVAL: int = Field(default=600, description="Periodic loop interval (10 minutes)")
    WARMER_STATS_INTERVAL: int = Field(default=3600, description="Stats re-warm interval")
    WARMER_TRENDS_INTERVAL: int = Field(default=1800, description="Trends re-warm interval")
    WARMER_KEYWORDS_INTERVAL: int = Field(default=1800, description="Keywords re-warm interval")
    WARMER_SEARCH_INTERVAL: int = Field(default=600, description="Search re-warm interval")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class MemoryOptimizerSettings(BaseSettings):
    """
    Redis memory pressure monitoring.

    STAGE-MEM: Memory optimizer configuration
    """

    MEMORY_CHECK_INTERVAL: int = Field(default=60, description="Seconds between memory checks")
    MEMORY_MAX_USAGE_PERCENT: float = Field(default=80.0, description="Usage that triggers optimization")
    MEMORY_ALERT_THRESHOLD: float = Field(default=75.0, description="Usage that triggers normal optimization")
    MEMORY_CRITICAL_THRESHOLD: float = Field(default=90.0, description="Usage that triggers emergency optimization")
    MEMORY_MIN_TTL: int = Field(default=60, description="Lower bound for adjusted TTLs")
    MEMORY_MAX_TTL: int = Field(default=7200, description="Upper bound for adjusted TTLs")
    MEMORY_TTL_FACTOR: float = Field(default=0.8, description="TTL multiplier for normal optimization")
    MEMORY_DEFAULT_KEY_TTL: int = Field(default=3600, description="TTL given to keys without one")
    MEMORY_EVICTION_BATCH: int = Field(default=100, description="Keys evicted in an emergency")
    MEMORY_FALLBACK_MAX_BYTES: int = Field(
        default=2 * 1024 * 1024 * 1024,
        description="Assumed maxmemory when Redis reports none (2GB)"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="TechTrend Cache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    CI: bool = Field(default=False, description="Running under CI")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(
    ApplicationSettings,
    LoggingSettings,
    MemoryOptimizerSettings,
    WarmerSettings,
    BatchOptimizerSettings,
    LockSettings,
    CircuitBreakerSettings,
    CacheSettings,
    RedisSettings,
):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from techtrend_cache.config.settings import get_settings

        settings = get_settings()
        redis_host = settings.redis.REDIS_HOST
        search_ttl = settings.cache.CACHE_SEARCH_TTL

    Every field can also be read flat (``settings.CACHE_SEARCH_TTL``); the
    section properties exist so components can depend on one slice only.
    """

    def _section(self, section_cls):
        values = {name: getattr(self, name) for name in section_cls.model_fields}
        return section_cls(**values)

    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return self._section(RedisSettings)

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return self._section(CacheSettings)

    @property
    def circuit_breaker(self) -> CircuitBreakerSettings:
        """Get circuit breaker settings."""
        return self._section(CircuitBreakerSettings)

    @property
    def lock(self) -> LockSettings:
        """Get distributed lock settings."""
        return self._section(LockSettings)

    @property
    def batch_optimizer(self) -> BatchOptimizerSettings:
        """Get batch optimizer settings."""
        return self._section(BatchOptimizerSettings)

    @property
    def warmer(self) -> WarmerSettings:
        """Get cache warmer settings."""
        return self._section(WarmerSettings)

    @property
    def memory_optimizer(self) -> MemoryOptimizerSettings:
        """Get memory optimizer settings."""
        return self._section(MemoryOptimizerSettings)

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return self._section(LoggingSettings)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return self._section(ApplicationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (lazily created)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the process-wide settings instance.

    STAGE-0.3: Settings initialization

    Settings are immutable configuration, so sharing one instance is safe;
    runtime objects (caches, loaders) are built by the CacheContainer.

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
