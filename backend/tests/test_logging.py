"""
Unit tests for structured logging configuration.

Tests verify:
- Logging configuration works for JSON and console output
- Context variables (trace, request, user, shop) are set, merged and cleared
- Trace ID generation works
"""
import logging

import pytest

from pharmassist.core import logging as logging_module
from pharmassist.core.logging import (
    add_request_context,
    bind_caller_context,
    clear_request_context,
    configure_logging,
    generate_request_id,
    generate_trace_id,
    get_logger,
    get_request_id,
    get_shop_id,
    get_trace_id,
    get_user_id,
    set_request_id,
    set_trace_id,
)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_request_context()
    yield
    clear_request_context()


class TestLoggingConfiguration:
    """Test logging configuration and setup."""

    def test_configure_logging_json_output(self):
        configure_logging(log_level="INFO", json_output=True)
        logger = get_logger(__name__)
        logger.info("test_message", test_field="test_value")

    def test_configure_logging_console_output(self):
        configure_logging(log_level="DEBUG", json_output=False)
        logger = get_logger(__name__)
        logger.debug("test_message", test_field="test_value")

    def test_exception_logging(self):
        configure_logging(log_level="ERROR", json_output=False)
        logger = get_logger(__name__)
        try:
            raise ValueError("Test exception")
        except ValueError:
            logger.error("exception_occurred", exc_info=True)

    def test_unknown_level_is_rejected(self):
        with pytest.raises(AttributeError):
            configure_logging(log_level="CHATTY")

    def teardown_method(self):
        logging.getLogger().setLevel(logging.INFO)


class TestContextVariables:
    """Test trace ID, request ID and caller context variables."""

    def test_set_and_get_trace_id(self):
        set_trace_id("test-trace-123")
        assert get_trace_id() == "test-trace-123"

    def test_set_and_get_request_id(self):
        set_request_id("test-request-456")
        assert get_request_id() == "test-request-456"

    def test_bind_caller_context(self):
        """Caller identity is bound once per capability call."""
        bind_caller_context("user-1", "shop-9")
        assert get_user_id() == "user-1"
        assert get_shop_id() == "shop-9"

    def test_bind_caller_context_ignores_missing_values(self):
        bind_caller_context("user-1", "shop-9")
        bind_caller_context(None, None)
        assert get_user_id() == "user-1"
        assert get_shop_id() == "shop-9"

    def test_clear_request_context(self):
        set_trace_id("t")
        set_request_id("r")
        bind_caller_context("u", "s")
        clear_request_context()
        assert get_trace_id() is None
        assert get_request_id() is None
        assert get_user_id() is None
        assert get_shop_id() is None

    def test_generate_ids_are_unique_uuids(self):
        trace_id = generate_trace_id()
        request_id = generate_request_id()
        assert len(trace_id) == 36 and trace_id.count("-") == 4
        assert trace_id != generate_trace_id()
        assert request_id != generate_request_id()


class TestRequestContextProcessor:
    """The processor that stamps context onto every event."""

    def test_context_fields_are_added(self):
        set_trace_id("trace-1")
        set_request_id("req-1")
        bind_caller_context("user-1", "shop-1")

        event = add_request_context(None, "info", {"event": "tier_failed"})

        assert event["trace_id"] == "trace-1"
        assert event["request_id"] == "req-1"
        assert event["user_id"] == "user-1"
        assert event["shop_id"] == "shop-1"
        assert event["service"] == logging_module.SERVICE_NAME
        assert "timestamp" in event

    def test_unset_context_is_omitted(self):
        event = add_request_context(None, "info", {"event": "capability_completed"})
        assert "trace_id" not in event
        assert "user_id" not in event

    def test_explicit_fields_win(self):
        bind_caller_context(None, "shop-from-context")
        event = add_request_context(None, "info", {"event": "x", "shop_id": "explicit"})
        assert event["shop_id"] == "explicit"
