"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging
import sys

from uplift.logging_config import (
    JSONFormatter,
    get_logger,
    get_request_id,
    new_request_id,
    request_log_fields,
    reset_request_id,
    set_request_id,
    setup_logging,
)


def _record(msg="hello %s", args=("world",), exc_info=None, **extra):
    record = logging.LogRecord(
        name="test", level=logging.INFO, pathname="test.py", lineno=1, msg=msg, args=args, exc_info=exc_info
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_outputs_valid_json():
    parsed = json.loads(JSONFormatter().format(_record()))
    assert parsed["message"] == "hello world"
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test"
    assert "timestamp" in parsed
    assert "request_id" not in parsed


def test_json_formatter_includes_exception():
    try:
        raise ValueError("test error")
    except ValueError:
        exc_info = sys.exc_info()
    parsed = json.loads(JSONFormatter().format(_record("fail", (), exc_info)))
    assert parsed["exception"]["type"] == "ValueError"
    assert parsed["exception"]["message"] == "test error"


def test_json_formatter_collects_extra_context():
    parsed = json.loads(JSONFormatter().format(_record("duel_created", (), duel_id=7, challenger_id=1)))
    assert parsed["context"] == {"duel_id": 7, "challenger_id": 1}


def test_request_id_is_attached():
    token = set_request_id("req-123")
    try:
        assert get_request_id() == "req-123"
        parsed = json.loads(JSONFormatter().format(_record()))
        assert parsed["request_id"] == "req-123"
    finally:
        reset_request_id(token)
    assert get_request_id() is None


def test_new_request_id_is_unique():
    assert new_request_id() != new_request_id()


def test_request_log_fields():
    fields = request_log_fields(method="GET", path="/x", status_code=200, duration_ms=1.2345, client_ip=None)
    assert fields == {"method": "GET", "path": "/x", "status_code": 200, "duration_ms": 1.23, "client_ip": ""}


def test_get_logger_returns_named_logger():
    log = get_logger("my.module")
    assert log.name == "my.module"
    assert isinstance(log, logging.Logger)


def test_setup_logging_idempotent():
    root = logging.getLogger()
    initial_count = len(root.handlers)
    setup_logging()
    setup_logging()
    assert len(root.handlers) <= initial_count + 1
