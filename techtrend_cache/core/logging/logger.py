"""
Structured Logging for the cache core

Every component logs through structlog with a ``stage`` field naming the
layer and step (``L1.GET``, ``L2.SCAN``, ``LOCK.ACQUIRE``, ``OPT.ADJUST``).
A request ID held in a context variable ties together the cache activity
of one page render, including work scheduled on background tasks.

Batch loads log the keys they touch. Long key lists are collapsed to a
count plus a short sample so one 100-article listing does not produce a
multi-kilobyte log line.
"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from techtrend_cache.config.settings import get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Event fields that may carry a list of cache keys or entity IDs
KEY_LIST_FIELDS = ("keys", "article_ids", "missing_keys", "patterns")
KEY_LIST_SAMPLE = 5


def add_request_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    STAGE-L.1: Copy the current request ID onto the event.
    """
    request_id = request_id_ctx.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """STAGE-L.2: UTC ISO-8601 timestamp with a ``Z`` suffix."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def summarize_key_lists(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Collapse oversized key lists.

    STAGE-L.3: Key list summarisation

    A list under one of ``KEY_LIST_FIELDS`` longer than ``KEY_LIST_SAMPLE``
    is replaced by its first entries, and ``<field>_count`` records the
    full length.
    """
    for field in KEY_LIST_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, (list, tuple)) and len(value) > KEY_LIST_SAMPLE:
            event_dict[f"{field}_count"] = len(value)
            event_dict[field] = list(value[:KEY_LIST_SAMPLE])
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """STAGE-L.4"""
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog on top of the standard library logger.

    STAGE-L: Logging initialization

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: 'json' for aggregation, 'console' for local development
    """
    settings = get_settings()
    level_name = (log_level or settings.logging.LOG_LEVEL).upper()
    fmt = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level_name))

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_request_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            summarize_key_lists,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("L1 cache hit", stage="L1.GET", key="favorite:u1:a1")
    """
    return structlog.get_logger(name)


def set_request_id(request_id: str) -> None:
    """
    Bind a request ID for the current context.

    asyncio tasks copy the context when they are created, so background L2
    writes spawned during the request log the same ID.
    """
    request_id_ctx.set(request_id)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def clear_request_id() -> None:
    request_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log ``message`` at ``level`` tagged with ``stage``.

    Usage:
        log_stage(logger, "LOCK.ACQUIRE", "Lock acquired", key="lock:k")
    """
    getattr(logger, level.lower())(message, stage=stage, **kwargs)
