"""Logging setup tests."""

from __future__ import annotations

import logging

from request_sanitizer.logging_config import MAX_LOGGED_VALUE_CHARS, _truncate_long_values, setup_logging


class TestTruncateLongValues:
    def test_long_value_cut(self):
        event = {"event": "body_sanitizer_error", "error": "x" * (MAX_LOGGED_VALUE_CHARS + 10)}
        result = _truncate_long_values(None, "error", event)
        assert result["error"] == "x" * MAX_LOGGED_VALUE_CHARS + "...(+10 chars)"

    def test_short_and_non_string_values_kept(self):
        event = {"event": "payload_too_large", "size": 2_000_000, "request_id": "abc12345"}
        assert _truncate_long_values(None, "warning", dict(event)) == event

    def test_event_name_never_cut(self):
        name = "e" * (MAX_LOGGED_VALUE_CHARS + 1)
        assert _truncate_long_values(None, "info", {"event": name})["event"] == name


def test_setup_logging_sets_levels():
    setup_logging(log_level="debug", json_format=False)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("uvicorn.access").level == logging.WARNING
    assert len(logging.getLogger().handlers) == 1
