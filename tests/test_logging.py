"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from finproxy.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
)


def _record(msg: str = "Test message", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSON formatter for structured logging."""

    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert data["source"]["file"] == "test.py"
        assert data["source"]["line"] == 1

    def test_context_fields_promoted(self):
        record = _record(request_id="req-1", upstream_host="finnhub.io", cache="HIT")

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-1"
        assert data["upstream_host"] == "finnhub.io"
        assert data["cache"] == "HIT"
        assert "extra" not in data

    def test_unknown_extra_nested(self):
        data = json.loads(JSONFormatter().format(_record(max_buckets=1000)))

        assert data["extra"] == {"max_buckets": 1000}

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert any("ValueError: boom" in line for line in data["exception"])


class TestContextFilter:
    def test_adds_missing_defaults(self):
        record = _record(request_id="req-1")

        assert ContextFilter().filter(record) is True
        assert record.request_id == "req-1"
        assert record.upstream_host is None
        assert record.cache is None


class TestLoggingConfig:
    def test_text_format_by_default(self):
        with patch("finproxy.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "text"
            mock_settings.log_level = "info"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "text"
        assert config["handlers"]["console"]["level"] == "INFO"
        assert "finproxy" in config["loggers"]

    def test_json_format(self):
        with patch("finproxy.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "JSON"
            mock_settings.log_level = "DEBUG"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"].endswith("JSONFormatter")

    def test_structured_format(self):
        with patch("finproxy.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "structured"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "structured"
        assert "upstream_host" in config["formatters"]["structured"]["format"]


def test_get_log_context_drops_none():
    context = get_log_context(request_id="req-1", upstream_host=None, status_code=200)

    assert context == {"request_id": "req-1", "status_code": 200}


def test_get_logger_default_name():
    assert get_logger().name == "finproxy"
