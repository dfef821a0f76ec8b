"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from techtrend_cache.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    def test_sections_are_available(self):
        settings = Settings(_env_file=None)
        for section in ("redis", "cache", "circuit_breaker", "lock", "batch_optimizer", "warmer", "memory_optimizer", "logging", "app"):
            assert getattr(settings, section) is not None

    def test_cache_ttl_defaults(self):
        cache = Settings(_env_file=None).cache
        assert cache.CACHE_NAMESPACE == "@techtrend/cache"
        assert cache.CACHE_STATS_TTL == 3600
        assert cache.CACHE_TRENDS_TTL == 1800
        assert cache.CACHE_SEARCH_TTL == 300
        assert cache.CACHE_LOADER_L1_TTL == 30
        assert cache.CACHE_LOADER_L2_TTL == 60

    def test_lock_and_breaker_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.lock.LOCK_DEFAULT_TTL == 30
        assert settings.lock.LOCK_POLL_ATTEMPTS == 10
        assert settings.lock.LOCK_POLL_INTERVAL == 0.2
        assert settings.circuit_breaker.CB_FAILURE_THRESHOLD == 5
        assert settings.circuit_breaker.CB_RECOVERY_TIMEOUT == 60
        assert settings.circuit_breaker.CB_HALF_OPEN_REQUESTS == 3

    def test_optimizer_defaults(self):
        opt = Settings(_env_file=None).batch_optimizer
        assert (opt.BATCH_MIN_SIZE, opt.BATCH_MAX_SIZE, opt.BATCH_INITIAL_SIZE) == (10, 200, 50)

    def test_memory_fallback_is_two_gib(self):
        assert Settings(_env_file=None).memory_optimizer.MEMORY_FALLBACK_MAX_BYTES == 2 * 1024**3


@pytest.mark.unit
class TestSettingsOverrides:
    def test_environment_variable_override(self):
        with patch.dict(os.environ, {"CACHE_SEARCH_TTL": "120"}):
            settings = Settings(_env_file=None)
        assert settings.cache.CACHE_SEARCH_TTL == 120

    def test_log_level_is_normalised(self):
        assert Settings(_env_file=None, LOG_LEVEL="debug").logging.LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="LOUD")

    def test_reload_replaces_global_instance(self):
        first = get_settings()
        second = reload_settings()
        assert first is not second
        assert get_settings() is second
