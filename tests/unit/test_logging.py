"""Unit tests for the structured logging configuration.

Verifies that ``configure_logging()`` produces well-formed output and that
the ``feed_id_var`` context variable is propagated into records.
"""

from __future__ import annotations

import json
import logging
from io import StringIO

from feed_aggregator.core.logging_config import _redact_secrets, configure_logging, feed_id_var


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _capture_log_output(log_level: str, message: str, **extra) -> str:
    """Emit a single log record and capture the raw text written to stdout."""
    configure_logging(log_level)

    buffer = StringIO()
    root = logging.getLogger()
    original_streams = []
    for handler in root.handlers:
        if hasattr(handler, "stream"):
            original_streams.append((handler, handler.stream))
            handler.stream = buffer

    logger = logging.getLogger("test.logging_config")
    logger.info(message, extra=extra if extra else {})

    for handler, stream in original_streams:
        handler.flush()
        handler.stream = stream

    return buffer.getvalue()


def _record(output: str, event: str) -> dict | None:
    records = [json.loads(line) for line in output.strip().splitlines() if line.strip()]
    return next((r for r in records if r.get("event") == event), None)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestConfigureLoggingJson:
    """Verify INFO-level (production) JSON output."""

    def test_logging_produces_json(self) -> None:
        output = _capture_log_output("INFO", "test_message_json")

        lines = [line for line in output.strip().splitlines() if line.strip()]
        assert lines, "Expected at least one log line, got none"
        for line in lines:
            assert isinstance(json.loads(line), dict)

    def test_json_contains_required_fields(self) -> None:
        target = _record(_capture_log_output("INFO", "required_fields_test"), "required_fields_test")

        assert target is not None, "Expected log record not found"
        assert "timestamp" in target
        assert target["level"] == "info"
        assert target["logger"] == "test.logging_config"

    def test_secret_keys_are_redacted(self) -> None:
        event = _redact_secrets(
            None,
            "info",
            {"event": "x", "websub_secret": "s3cret", "headers": {"Authorization": "Bearer t"}, "url": "u"},
        )

        assert event["websub_secret"] == "[REDACTED]"
        assert event["headers"]["Authorization"] == "[REDACTED]"
        assert event["url"] == "u"


class TestFeedIdContextVar:
    """Verify that feed_id_var is propagated into log records."""

    def test_feed_id_appears_in_json_output(self) -> None:
        token = feed_id_var.set("feed-1234")
        try:
            output = _capture_log_output("INFO", "feed_id_propagation_test")
        finally:
            feed_id_var.reset(token)

        target = _record(output, "feed_id_propagation_test")
        assert target is not None
        assert target.get("feed_id") == "feed-1234"

    def test_no_feed_id_when_var_unset(self) -> None:
        target = _record(_capture_log_output("INFO", "no_feed_id_test"), "no_feed_id_test")

        assert target is not None
        assert target.get("feed_id") is None


class TestConfigureLoggingIdempotent:
    def test_calling_twice_does_not_duplicate_handlers(self) -> None:
        configure_logging("INFO")
        configure_logging("INFO")

        assert len(logging.getLogger().handlers) == 1
