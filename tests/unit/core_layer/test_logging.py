"""
Unit Tests for Logging Module

Tests logger creation, request ID context and stage logging.
"""

from unittest.mock import MagicMock

import pytest

from techtrend_cache.core.logging.logger import (
    add_log_level_name,
    add_request_id,
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    set_request_id,
    setup_logging,
    summarize_key_lists,
)


@pytest.mark.unit
class TestLoggerCreation:
    def test_get_logger_returns_logger_instance(self):
        logger = get_logger(__name__)
        assert hasattr(logger, "info")

    def test_setup_logging_accepts_both_formats(self):
        setup_logging(log_level="DEBUG", log_format="console")
        setup_logging(log_level="INFO", log_format="json")
        assert hasattr(get_logger("after-setup"), "warning")


@pytest.mark.unit
class TestRequestContext:
    def test_set_and_clear_request_id(self):
        set_request_id("req-123")
        assert get_request_id() == "req-123"

        clear_request_id()

        assert get_request_id() is None

    def test_processor_injects_request_id(self):
        set_request_id("req-abc")
        try:
            event = add_request_id(None, "info", {"event": "L1 hit"})
        finally:
            clear_request_id()
        assert event["request_id"] == "req-abc"

    def test_processor_skips_missing_request_id(self):
        clear_request_id()
        event = add_request_id(None, "info", {"event": "L1 hit"})
        assert "request_id" not in event

    def test_level_name_is_upper_cased(self):
        assert add_log_level_name(None, "info", {"level": "warning"})["level"] == "WARNING"


@pytest.mark.unit
class TestLogStage:
    def test_log_stage_calls_level_method_with_stage(self):
        logger = MagicMock()

        log_stage(logger, "LOCK.ACQUIRE", "Lock acquired", level="warning", key="lock:k")

        logger.warning.assert_called_once_with("Lock acquired", stage="LOCK.ACQUIRE", key="lock:k")

    def test_log_stage_defaults_to_info(self):
        logger = MagicMock()
        log_stage(logger, "L2.GET", "hit")
        logger.info.assert_called_once_with("hit", stage="L2.GET")


@pytest.mark.unit
class TestKeyListSummary:
    def test_long_key_list_is_truncated_with_count(self):
        keys = [f"favorite:u1:a{i}" for i in range(12)]

        event = summarize_key_lists(None, "info", {"event": "batch", "keys": keys})

        assert event["keys"] == keys[:5]
        assert event["keys_count"] == 12

    def test_short_list_is_left_alone(self):
        event = summarize_key_lists(None, "debug", {"event": "batch", "article_ids": ["a1", "a2"]})

        assert event["article_ids"] == ["a1", "a2"]
        assert "article_ids_count" not in event
