"""
Base Exception Class

Only the root of the hierarchy lives here. Cache, lock, breaker and
loader errors are defined in their own modules.
"""

from typing import Any


class TechTrendCacheError(Exception):
    """
    Root of every error raised by the cache core.

    Carries a ``details`` dict for structured logging and an optional
    ``request_id`` so a failure can be matched to the page render that
    triggered it. ``retryable`` marks failures worth waiting out (a Redis
    connection that may come back) as opposed to ones that will fail the
    same way again (a payload that does not decode).

    Example:
        raise LockAcquisitionError(
            "Could not acquire lock",
            details={"key": "cache:warming:startup", "waited_seconds": 5.0}
        )
    """

    retryable: bool = False

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = dict(details or {})
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "TechTrendCacheError":
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "TechTrendCacheError":
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        parts = [f"message='{self.message}'"]
        if self.request_id:
            parts.append(f"request_id='{self.request_id}'")
        if self.details:
            parts.append(f"details={self.details}")
        return f"{type(self).__name__}({', '.join(parts)})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "TechTrendCacheError":
        """
        Wrap a redis-py, orjson or repository exception.

        The wrapped class name and message are kept under
        ``original_error`` / ``original_message``.

        Example:
            >>> try:
            ...     await client.ping()
            ... except redis.ConnectionError as e:
            ...     raise CacheConnectionError.from_exception(e, host="localhost", port=6379)
        """
        return cls(
            message or str(exc),
            request_id=request_id,
            details={
                "original_error": type(exc).__name__,
                "original_message": str(exc),
                **details,
            },
        )


class ConfigurationError(TechTrendCacheError):
    """Raised when configuration is invalid or missing."""
