"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from guard.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    SecurityContextFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
)


def make_record(msg: str = "Test message") -> logging.LogRecord:
    return logging.LogRecord(
        name="guard.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "guard.test"
        assert data["message"] == "Test message"
        assert data["source"]["line"] == 1
        assert "timestamp" in data

    def test_context_fields_promoted(self):
        record = make_record("Security event: login_failed")
        record.identity_id = "user-1"
        record.event_name = "login_failed"
        record.rate_limit_key = None

        data = json.loads(JSONFormatter().format(record))

        assert data["identity_id"] == "user-1"
        assert data["event_name"] == "login_failed"
        assert "rate_limit_key" not in data

    def test_unknown_extras_grouped(self):
        record = make_record()
        record.error_code = "weak_password"

        data = json.loads(JSONFormatter().format(record))
        assert data["extra"]["error_code"] == "weak_password"

    def test_exception_included(self):
        try:
            raise RuntimeError("sink down")
        except RuntimeError:
            record = logging.LogRecord(
                "guard.test", logging.ERROR, "test.py", 1, "Delivery failed", (), sys.exc_info()
            )

        data = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: sink down" in data["exception"]


class TestSecurityContextFormatter:
    """Test the key=value text layout."""

    def test_appends_set_fields_only(self):
        record = make_record("Login rejected")
        record.identity_id = "user-1"
        record.event_name = "login_failed"
        record.session_id = None

        line = SecurityContextFormatter("%(levelname)s %(message)s").format(record)

        assert line == "INFO Login rejected [identity_id=user-1 event_name=login_failed]"

    def test_plain_line_without_context(self):
        line = SecurityContextFormatter("%(message)s").format(make_record())
        assert line == "Test message"


class TestContextFilter:
    def test_adds_defaults(self):
        record = make_record()
        assert ContextFilter().filter(record) is True
        assert record.identity_id is None
        assert record.event_name is None

    def test_keeps_existing_values(self):
        record = make_record()
        record.session_id = "sess-1"
        ContextFilter().filter(record)
        assert record.session_id == "sess-1"


class TestLoggingConfig:
    def test_json_format_selected(self):
        with patch("guard.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "debug"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"]["guard"]["level"] == "DEBUG"

    def test_text_format_default(self):
        with patch("guard.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "text"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "text"

    def test_unknown_format_falls_back_to_text(self):
        with patch("guard.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "xml"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "text"
        assert set(config["formatters"]) == {"text", "structured", "json"}


def test_get_log_context_drops_none():
    context = get_log_context(identity_id="user-1", event_name=None, attempts=3)
    assert context == {"identity_id": "user-1", "attempts": 3}


def test_get_logger_namespace():
    assert get_logger().name == "guard"
    assert get_logger("guard.app.x").name == "guard.app.x"
