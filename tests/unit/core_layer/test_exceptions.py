"""
Unit Tests for Core Exceptions

Tests for the exception hierarchy and its helpers.
"""

import pytest

from techtrend_cache.core.exceptions import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
    CircuitBreakerError,
    CircuitBreakerOpenError,
    ConfigurationError,
    DataLoaderError,
    LockAcquisitionError,
    LockError,
    TechTrendCacheError,
)


@pytest.mark.unit
class TestTechTrendCacheError:
    """Test the base exception class."""

    def test_base_error_creation(self):
        error = TechTrendCacheError("Test message")
        assert str(error) == "Test message"
        assert error.details == {}
        assert error.request_id is None

    def test_details_are_copied(self):
        details = {"key": "value"}
        error = TechTrendCacheError("Test", details=details)
        error.details["other"] = 1
        assert details == {"key": "value"}

    def test_to_dict(self):
        error = CacheKeyError("SET failed", request_id="req-1", details={"key": "k"})
        assert error.to_dict() == {
            "error_type": "CacheKeyError",
            "message": "SET failed",
            "request_id": "req-1",
            "details": {"key": "k"},
        }

    def test_with_suggestion_and_context_chain(self):
        error = ConfigurationError("bad TTL").with_suggestion("use seconds").with_context(field="ttl")
        assert error.details == {"suggestion": "use seconds", "field": "ttl"}

    def test_from_exception_wraps_original(self):
        original = ConnectionRefusedError("refused")
        error = CacheConnectionError.from_exception(original, host="localhost")

        assert isinstance(error, CacheConnectionError)
        assert error.message == "refused"
        assert error.details["original_error"] == "ConnectionRefusedError"
        assert error.details["host"] == "localhost"

    def test_repr_includes_details(self):
        error = LockAcquisitionError("busy", details={"key": "k"})
        assert "LockAcquisitionError" in repr(error)
        assert "'key': 'k'" in repr(error)


@pytest.mark.unit
class TestHierarchy:
    @pytest.mark.parametrize(
        "error_cls",
        [CacheConnectionError, CacheKeyError, CacheSerializationError, LockError, LockAcquisitionError],
    )
    def test_cache_errors(self, error_cls):
        assert issubclass(error_cls, CacheError)

    def test_lock_acquisition_is_lock_error(self):
        assert issubclass(LockAcquisitionError, LockError)

    def test_circuit_breaker_open(self):
        assert issubclass(CircuitBreakerOpenError, CircuitBreakerError)
        assert not issubclass(CircuitBreakerOpenError, CacheError)

    @pytest.mark.parametrize(
        "error_cls", [CacheError, CircuitBreakerError, ConfigurationError, DataLoaderError]
    )
    def test_everything_derives_from_base(self, error_cls):
        assert issubclass(error_cls, TechTrendCacheError)


@pytest.mark.unit
class TestRetryable:
    def test_connection_errors_are_retryable(self):
        assert CacheConnectionError("refused").retryable is True

    @pytest.mark.parametrize("error_cls", [CacheKeyError, CacheSerializationError, LockAcquisitionError])
    def test_other_errors_are_not(self, error_cls):
        assert error_cls("nope").retryable is False
