"""Tests for the client-side fetch lifecycle."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import httpx
import pytest
from fakes import FakeTicker
from fetch_proxy.client import ProxyClient, ProxyError
from fetch_proxy.errors import ERROR_MESSAGES, ErrorCode
from fetch_proxy.lifecycle import (
    Complete,
    ElapsedTicker,
    Error,
    FetchLifecycle,
    Fetching,
    Idle,
    InvalidTransition,
    Parsing,
    Validating,
    describe_progress,
    precheck_url,
)
from fetch_proxy.models import ProxyResponse


def make_response(head: str = "<title>T</title>", timing: int = 120) -> ProxyResponse:
    return ProxyResponse(
        url="https://example.com/",
        final_url="https://example.com/",
        status_code=200,
        content_type="text/html",
        head=head,
        body_snippet="",
        fetched_at=datetime.now(UTC),
        timing=timing,
    )


class StubClient:
    def __init__(self, response: ProxyResponse | None = None, error: ProxyError | None = None) -> None:
        self.response = response
        self.error = error
        self.urls: list[str] = []

    async def fetch(self, url: str) -> ProxyResponse:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response


def test_progress_tiers() -> None:
    url = "https://example.com/"
    assert describe_progress(0, url) == ("Fetching https://example.com/...", "neutral")
    assert describe_progress(4_999, url).tone == "neutral"
    assert describe_progress(5_000, url) == (
        "Still fetching... target site may be slow (5s)",
        "caution",
    )
    assert describe_progress(7_999, url).tone == "caution"
    assert describe_progress(8_000, url) == (
        "Waiting for response... (8s). Request will time out at 10 seconds.",
        "urgent",
    )


def test_progress_uses_timeout() -> None:
    message = describe_progress(9_500, "https://example.com/", timeout_ms=15_000)
    assert message.message.endswith("Request will time out at 15 seconds.")


def test_progress_truncates_long_url() -> None:
    url = "https://example.com/" + "a" * 100
    message = describe_progress(0, url)
    assert message.message == f"Fetching {url[:60]}......"


def test_precheck_url() -> None:
    assert precheck_url("https://example.com") is None
    assert precheck_url("http://example.com") is None
    assert precheck_url("") is ErrorCode.INVALID_URL
    assert precheck_url("example.com") is ErrorCode.INVALID_URL
    assert precheck_url("ftp://example.com") is ErrorCode.INVALID_URL


def test_happy_path_transitions() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    assert isinstance(lifecycle.state, Idle)

    lifecycle.begin()
    assert isinstance(lifecycle.state, Validating)
    lifecycle.set_fetching("https://example.com/")
    assert isinstance(lifecycle.state, Fetching)
    assert lifecycle.state.url == "https://example.com/"
    assert ticker.running is True

    lifecycle.set_parsing()
    assert isinstance(lifecycle.state, Parsing)
    lifecycle.set_complete(250)
    assert lifecycle.state == Complete(timing_ms=250)
    assert ticker.starts == 1
    assert ticker.stops == 1


def test_status_message_only_while_fetching() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    assert lifecycle.status_message() is None
    lifecycle.begin()
    lifecycle.set_fetching("https://example.com/")
    ticker.elapsed_ms = 6_000
    assert lifecycle.status_message() == (
        "Still fetching... target site may be slow (6s)",
        "caution",
    )
    lifecycle.set_complete(6_000)
    assert lifecycle.status_message() is None


def test_error_uses_canned_text() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    lifecycle.begin()
    lifecycle.set_fetching("https://example.com/")
    lifecycle.set_error(504, "upstream detail that must not be shown")

    state = lifecycle.state
    assert isinstance(state, Error)
    assert state.code is ErrorCode.TIMEOUT
    assert state.message == ERROR_MESSAGES[ErrorCode.TIMEOUT].message
    assert state.suggestion == ERROR_MESSAGES[ErrorCode.TIMEOUT].suggestion
    assert ticker.stops == 1


def test_invalid_transitions() -> None:
    lifecycle = FetchLifecycle(ticker=FakeTicker())
    with pytest.raises(InvalidTransition):
        lifecycle.set_parsing()
    with pytest.raises(InvalidTransition):
        lifecycle.set_error(500)
    lifecycle.begin()
    lifecycle.set_fetching("https://example.com/")
    with pytest.raises(InvalidTransition):
        lifecycle.begin()


def test_complete_and_error_accept_new_attempt() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    lifecycle.begin()
    lifecycle.set_fetching("https://example.com/")
    ticker.elapsed_ms = 3_000
    lifecycle.set_error(429)
    lifecycle.begin()
    assert isinstance(lifecycle.state, Validating)
    assert lifecycle.elapsed_ms == 0


def test_reset_from_fetching_stops_ticker_once() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    lifecycle.begin()
    lifecycle.set_fetching("https://example.com/")
    lifecycle.reset()
    lifecycle.reset()
    assert isinstance(lifecycle.state, Idle)
    assert ticker.stops == 1


@pytest.mark.asyncio
async def test_run_success() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    client = StubClient(response=make_response(timing=321))

    response = await lifecycle.run("https://example.com/", client)  # type: ignore[arg-type]

    assert response is not None
    assert lifecycle.state == Complete(timing_ms=321)
    assert client.urls == ["https://example.com/"]
    assert ticker.starts == 1
    assert ticker.stops == 1


@pytest.mark.asyncio
async def test_run_timeout_path() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    client = StubClient(error=ProxyError(504, "Gateway Timeout", "TIMEOUT"))

    assert await lifecycle.run("https://example.com/", client) is None  # type: ignore[arg-type]

    state = lifecycle.state
    assert isinstance(state, Error)
    assert state.code is ErrorCode.TIMEOUT
    assert ticker.stops == 1


@pytest.mark.asyncio
async def test_run_rate_limited_without_code() -> None:
    lifecycle = FetchLifecycle(ticker=FakeTicker())
    client = StubClient(error=ProxyError(429, ""))
    await lifecycle.run("https://example.com/", client)  # type: ignore[arg-type]
    assert isinstance(lifecycle.state, Error)
    assert lifecycle.state.code is ErrorCode.RATE_LIMITED


@pytest.mark.asyncio
async def test_run_precheck_failure_skips_proxy() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    client = StubClient(response=make_response())

    await lifecycle.run("not a url", client)  # type: ignore[arg-type]

    assert isinstance(lifecycle.state, Error)
    assert lifecycle.state.code is ErrorCode.INVALID_URL
    assert client.urls == []
    assert ticker.starts == 0


@pytest.mark.asyncio
async def test_run_empty_head_is_parse_error() -> None:
    lifecycle = FetchLifecycle(ticker=FakeTicker())
    client = StubClient(response=make_response(head=""))
    assert await lifecycle.run("https://example.com/", client) is None  # type: ignore[arg-type]
    assert isinstance(lifecycle.state, Error)
    assert lifecycle.state.code is ErrorCode.PARSE_ERROR


@pytest.mark.asyncio
async def test_run_cancelled_returns_to_idle() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    started = asyncio.Event()

    class HangingClient:
        async def fetch(self, url: str) -> ProxyResponse:
            started.set()
            await asyncio.sleep(10)
            raise AssertionError("unreachable")

    task = asyncio.create_task(lifecycle.run("https://example.com/", HangingClient()))  # type: ignore[arg-type]
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert isinstance(lifecycle.state, Idle)
    assert ticker.stops == 1


@pytest.mark.asyncio
async def test_run_unexpected_client_failure_ends_in_error() -> None:
    ticker = FakeTicker()
    lifecycle = FetchLifecycle(ticker=ticker)
    http = httpx.AsyncClient(base_url="http://proxy.test")
    await http.aclose()

    assert await lifecycle.run("https://example.com/", ProxyClient(http)) is None

    state = lifecycle.state
    assert isinstance(state, Error)
    assert state.code is ErrorCode.NETWORK_ERROR
    assert ticker.running is False
    assert ticker.stops == 1


@pytest.mark.asyncio
async def test_elapsed_ticker_counts_and_stops() -> None:
    ticker = ElapsedTicker(interval_ms=10)
    ticker.start()
    await asyncio.sleep(0.1)
    ticker.stop()
    stopped_at = ticker.elapsed_ms
    assert stopped_at > 0
    assert stopped_at % 10 == 0
    assert ticker.running is False
    await asyncio.sleep(0.05)
    assert ticker.elapsed_ms == stopped_at
    ticker.reset()
    assert ticker.elapsed_ms == 0
