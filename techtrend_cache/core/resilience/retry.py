"""
Retry policy built on tenacity.

Used where a failure is worth waiting out (establishing the Redis
connection at startup). Per-request cache calls are never retried; they
degrade through the circuit breaker instead.
"""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

RETRY_BASE_DELAY = 0.5
RETRY_MAX_DELAY = 5.0


def is_retryable(exc: BaseException) -> bool:
    """True for errors flagged ``retryable`` (CacheConnectionError and friends)."""
    return bool(getattr(exc, "retryable", False))


def create_retry_decorator(
    max_attempts: int = 3,
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    retry_exceptions: tuple = (ConnectionError, TimeoutError),
):
    """
    Exponential backoff with jitter, re-raising the last error.

    Retries our own ``retryable`` errors plus the builtin exception types
    in ``retry_exceptions``.
    """
    std_logger = logging.getLogger(__name__)  # tenacity logs through stdlib

    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential_jitter(initial=base_delay, max=max_delay, jitter=base_delay),
        retry=retry_if_exception(is_retryable) | retry_if_exception_type(retry_exceptions),
        before_sleep=before_sleep_log(std_logger, logging.WARNING),
        reraise=True,
    )
