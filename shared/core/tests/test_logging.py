"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest
from core import SECURITY, MemorySink, configure_logging, get_logger
from core.logging import JsonFormatter, SinkHandler


@pytest.fixture
def text_sink() -> Generator[MemorySink, None, None]:
    sink = MemorySink()
    configure_logging(level=logging.DEBUG, sink=sink, fmt="text")
    yield sink
    configure_logging(level=logging.INFO)


def test_json_line_has_base_and_extra_fields(log_sink: MemorySink) -> None:
    get_logger("svc").info("started", extra={"port": 8000, "skipped": None})
    (record,) = log_sink.records()
    assert record["level"] == "info"
    assert record["component"] == "svc"
    assert record["event"] == "started"
    assert record["port"] == 8000
    assert "skipped" not in record
    assert record["timestamp"].endswith("+00:00")


def test_security_level(log_sink: MemorySink) -> None:
    get_logger("svc").log(SECURITY, "request_blocked", extra={"blocked": True})
    (record,) = log_sink.records()
    assert record["level"] == "security"
    assert logging.WARNING < SECURITY < logging.ERROR


def test_exception_rendered(log_sink: MemorySink) -> None:
    try:
        raise ValueError("bad value")
    except ValueError:
        get_logger("svc").exception("failed")
    (record,) = log_sink.records()
    assert record["level"] == "error"
    assert "ValueError: bad value" in record["exc_info"]


def test_level_filtering(log_sink: MemorySink) -> None:
    configure_logging(level=logging.WARNING, sink=log_sink)
    logger = get_logger("svc")
    logger.info("hidden")
    logger.warning("shown")
    assert [r["event"] for r in log_sink.records()] == ["shown"]


def test_reconfigure_replaces_handler(log_sink: MemorySink) -> None:
    second = MemorySink()
    configure_logging(level=logging.DEBUG, sink=second)
    get_logger("svc").info("once")
    handlers = [h for h in logging.getLogger().handlers if isinstance(h, SinkHandler)]
    assert len(handlers) == 1
    assert handlers[0].sink is second
    assert len(second.lines) == 1
    assert log_sink.lines == []


def test_text_format(text_sink: MemorySink) -> None:
    get_logger("svc").log(SECURITY, "request_blocked", extra={"code": "SSRF_BLOCKED"})
    (line,) = text_sink.lines
    assert line == "[##] SECURITY svc: request_blocked code=SSRF_BLOCKED"


def test_json_formatter_serializes_unknown_types() -> None:
    record = logging.LogRecord("svc", logging.INFO, __file__, 1, "evt", None, None)
    record.when = object()
    payload = json.loads(JsonFormatter().format(record))
    assert payload["when"].startswith("<object object")
