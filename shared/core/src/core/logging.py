"""Pluggable structured logging on top of the standard library ``logging`` interface.

Components use :func:`get_logger` to get a standard :class:`logging.Logger`.
Records are rendered either as JSON lines (production) or as short readable
lines (development) and written to a :class:`LogSink`. The sink decides where
the text goes (stdout by default, an in-memory list in tests); storage and
delivery of the lines is someone else's job.

Structured fields are passed with ``extra=`` and end up as top-level keys in
the JSON object::

    logger = get_logger("fetch_proxy")
    logger.info("fetch_success", extra={"url": url, "timing": 120})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, TextIO, override

LogFormat = Literal["json", "text"]

# Between WARNING (30) and ERROR (40): blocked requests are notable, not failures.
SECURITY = 35
logging.addLevelName(SECURITY, "SECURITY")

# Attributes that exist on every logging.LogRecord; we don't duplicate them as "extra".
_STANDARD_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "message",
        "taskName",
        "thread",
        "threadName",
        "getMessage",
    }
)

_TEXT_MARKERS = {
    "DEBUG": "..",
    "INFO": "ok",
    "WARNING": "!!",
    "SECURITY": "##",
    "ERROR": "xx",
    "CRITICAL": "XX",
}


class LogSink(Protocol):
    """Abstract destination for rendered log lines (e.g. stdout, file, backend)."""

    def write(self, message: str) -> None:  # pragma: no cover
        ...


class PrintSink:
    """Log sink that writes each record as a line via :func:`print`.

    Without an explicit stream, ``sys.stdout`` is looked up on every write so
    redirected or captured stdout is honoured.
    """

    _stream: TextIO | None

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def write(self, message: str) -> None:
        print(message, file=self._stream or sys.stdout, flush=True)


class MemorySink:
    """Keeps rendered lines in memory. Used by tests to assert on log output."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def write(self, message: str) -> None:
        self.lines.append(message)

    def records(self) -> list[dict[str, Any]]:
        """Parse captured lines as JSON objects (only valid with the json format)."""
        return [json.loads(line) for line in self.lines]

    def clear(self) -> None:
        self.lines.clear()


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_RECORD_ATTRS and value is not None
    }


class JsonFormatter(logging.Formatter):
    """Format log records as a single JSON object per line."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname.lower(),
            "component": record.name,
            "event": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Readable single-line output for local development."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        marker = _TEXT_MARKERS.get(record.levelname, "--")
        line = f"[{marker}] {record.levelname} {record.name}: {record.getMessage()}"
        fields = _extra_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class SinkHandler(logging.Handler):
    """Handler that writes formatted records to a :class:`LogSink`."""

    _sink: LogSink

    def __init__(self, sink: LogSink) -> None:
        super().__init__()
        self._sink = sink

    @property
    def sink(self) -> LogSink:
        return self._sink

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._sink.write(self.format(record))
        except Exception:  # noqa: BLE001
            self.handleError(record)


_default_sink: LogSink | None = None


def configure_logging(
    level: int | str = logging.INFO,
    sink: LogSink | None = None,
    fmt: LogFormat = "json",
) -> LogSink:
    """Configure root logging to emit lines in ``fmt`` to the given sink.

    If ``sink`` is omitted, uses :class:`PrintSink` (stdout). Calling this again
    replaces the previously installed sink handler instead of stacking a second
    one. Returns the active sink.
    """
    global _default_sink
    _default_sink = sink if sink is not None else PrintSink()
    root = logging.getLogger()
    root.setLevel(level)
    for existing in [h for h in root.handlers if isinstance(h, SinkHandler)]:
        root.removeHandler(existing)
    handler = SinkHandler(_default_sink)
    handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter())
    root.addHandler(handler)
    return _default_sink


def get_logger(name: str) -> logging.Logger:
    """Return a standard :class:`logging.Logger` for the given component/name.

    On first call, configures root logging to emit JSON lines to stdout (or
    the sink set by :func:`configure_logging`).
    """
    if _default_sink is None:
        configure_logging(sink=PrintSink())
    return logging.getLogger(name)
