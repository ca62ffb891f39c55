"""Unit tests for the JSON formatter and path redaction."""

import json
import logging
import sys

import pytest

from httptap.bootstrap.logging_setup import (
    JsonFormatter,
    redact_sensitive,
    redact_target,
)


@pytest.fixture(name="json_formatter")
def json_formatter_fixture():
    """Create a JSON formatter instance."""
    return JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="http_tap.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="Test message",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_basic_fields(json_formatter):
    """All records carry timestamp, level, correlation id, component, message."""
    output = json_formatter.format(
        _record(correlation_id="test-correlation-id", component="test")
    )
    log_data = json.loads(output)

    assert log_data["level"] == "INFO"
    assert log_data["correlation_id"] == "test-correlation-id"
    assert log_data["component"] == "test"
    assert log_data["message"] == "Test message"
    assert "timestamp" in log_data


def test_json_formatter_includes_request_fields(json_formatter):
    """Request fields and the event name are emitted when present."""
    output = json_formatter.format(
        _record(
            event="request_captured",
            method="POST",
            path="/upload",
            datetime="2026-01-01T00:00:00+00:00",
            bytes_in=42,
        )
    )
    log_data = json.loads(output)

    assert log_data["event"] == "request_captured"
    assert log_data["method"] == "POST"
    assert log_data["path"] == "/upload"
    assert log_data["bytes_in"] == 42
    assert log_data["datetime"].startswith("2026-01-01")


def test_json_formatter_ignores_unknown_extras(json_formatter):
    """Only whitelisted keys are serialized."""
    log_data = json.loads(json_formatter.format(_record(unrelated="value")))
    assert "unrelated" not in log_data


def test_json_formatter_redacts_sensitive_query_values(json_formatter):
    """Credential-looking query values are not written to logs."""
    log_data = json.loads(json_formatter.format(_record(path="/hook?token=abc")))
    assert log_data["path"] == "/hook?token=[REDACTED]"


def test_json_formatter_keeps_plain_paths(json_formatter):
    """Paths are logged as they are, even when they contain trigger words."""
    log_data = json.loads(json_formatter.format(_record(path="/monkey/hotkeys")))
    assert log_data["path"] == "/monkey/hotkeys"


def test_json_formatter_includes_exception(json_formatter):
    """Exception info is rendered as text."""
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    log_data = json.loads(json_formatter.format(record))
    assert "ValueError: boom" in log_data["exception"]


def test_json_formatter_has_stable_key_order(json_formatter):
    """Keys are sorted so log lines diff cleanly."""
    output = json_formatter.format(_record(method="GET", event="e"))
    keys = list(json.loads(output).keys())
    assert keys == sorted(keys)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("/plain/path", "/plain/path"),
        ("/login?password=hunter2", "[REDACTED]"),
        ("/" + "a" * 40, "[REDACTED]"),
        ("", ""),
    ],
)
def test_redact_sensitive(value, expected):
    """Values that look like secrets are replaced wholesale."""
    assert redact_sensitive(value) == expected


@pytest.mark.parametrize(
    "target, expected",
    [
        ("/monkey", "/monkey"),
        ("/tokens", "/tokens"),
        ("/hooks/" + "a1b2" * 10, "/hooks/" + "a1b2" * 10),
        ("/hook?token=x", "/hook?token=[REDACTED]"),
        ("/hook?page=2&api_key=abc", "/hook?page=2&api_key=[REDACTED]"),
        ("/hook?sig=" + "f" * 40, "/hook?sig=[REDACTED]"),
        ("/search?q=cats", "/search?q=cats"),
        ("/hook?" + "f" * 40, "/hook?[REDACTED]"),
    ],
)
def test_redact_target(target, expected):
    """Only query parameters are redacted; the path component is kept."""
    assert redact_target(target) == expected
