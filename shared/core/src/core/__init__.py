"""Core package: ambient pieces shared by components (structured logging, test fixtures)."""

from core.logging import (
    SECURITY,
    JsonFormatter,
    LogSink,
    MemorySink,
    PrintSink,
    TextFormatter,
    configure_logging,
    get_logger,
)

__all__ = [
    "SECURITY",
    "JsonFormatter",
    "LogSink",
    "MemorySink",
    "PrintSink",
    "TextFormatter",
    "configure_logging",
    "get_logger",
]
