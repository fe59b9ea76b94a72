"""Shared pytest fixtures (captured structured logs)."""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest

from core.logging import MemorySink, PrintSink, configure_logging


@pytest.fixture
def log_sink() -> Generator[MemorySink, None, None]:
    """Route all logging into memory as JSON lines for the duration of a test."""
    sink = MemorySink()
    configure_logging(level=logging.DEBUG, sink=sink)
    yield sink
    configure_logging(level=logging.INFO, sink=PrintSink())
