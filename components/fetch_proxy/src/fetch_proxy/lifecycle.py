"""Client-side state machine for one fetch attempt, with escalating progress messages."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal, NamedTuple, Protocol
from urllib.parse import urlsplit

from core import get_logger
from pydantic import BaseModel, ConfigDict, Field

from fetch_proxy.client import ProxyClient, ProxyError
from fetch_proxy.errors import ERROR_MESSAGES, ErrorCode, classify_error

if TYPE_CHECKING:
    from fetch_proxy.models import ProxyResponse

_logger = get_logger(__name__)

Tone = Literal["neutral", "caution", "urgent"]

TICK_INTERVAL_MS = 100
URL_DISPLAY_LENGTH = 60


class ProgressTier(NamedTuple):
    min_elapsed_ms: int
    tone: Tone
    template: str


class ProgressMessage(NamedTuple):
    message: str
    tone: Tone


PROGRESS_TIERS: tuple[ProgressTier, ...] = (
    ProgressTier(0, "neutral", "Fetching {url}..."),
    ProgressTier(5_000, "caution", "Still fetching... target site may be slow ({seconds}s)"),
    ProgressTier(
        8_000,
        "urgent",
        "Waiting for response... ({seconds}s). Request will time out at {timeout} seconds.",
    ),
)


def _display_url(url: str) -> str:
    if len(url) > URL_DISPLAY_LENGTH:
        return url[:URL_DISPLAY_LENGTH] + "..."
    return url


def describe_progress(
    elapsed_ms: int,
    url: str,
    timeout_ms: int = 10_000,
    tiers: tuple[ProgressTier, ...] = PROGRESS_TIERS,
) -> ProgressMessage:
    """Status line for a fetch that has been running for ``elapsed_ms``."""
    tier = tiers[0]
    for candidate in tiers:
        if elapsed_ms >= candidate.min_elapsed_ms:
            tier = candidate
    message = tier.template.format(
        url=_display_url(url),
        seconds=elapsed_ms // 1000,
        timeout=f"{timeout_ms / 1000:g}",
    )
    return ProgressMessage(message, tier.tone)


# States. Exactly one is active at a time.


class Idle(BaseModel):
    model_config = ConfigDict(frozen=True)
    status: Literal["idle"] = Field(default="idle")


class Validating(BaseModel):
    model_config = ConfigDict(frozen=True)
    status: Literal["validating"] = Field(default="validating")


class Fetching(BaseModel):
    model_config = ConfigDict(frozen=True)
    status: Literal["fetching"] = Field(default="fetching")
    started_at: datetime
    url: str


class Parsing(BaseModel):
    model_config = ConfigDict(frozen=True)
    status: Literal["parsing"] = Field(default="parsing")


class Complete(BaseModel):
    model_config = ConfigDict(frozen=True)
    status: Literal["complete"] = Field(default="complete")
    timing_ms: int


class Error(BaseModel):
    model_config = ConfigDict(frozen=True)
    status: Literal["error"] = Field(default="error")
    code: ErrorCode
    message: str
    suggestion: str


FetchState = Idle | Validating | Fetching | Parsing | Complete | Error


class InvalidTransition(RuntimeError):
    pass


class Ticker(Protocol):
    """Elapsed-time counter driven by a periodic timer."""

    @property
    def elapsed_ms(self) -> int: ...

    @property
    def running(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def reset(self) -> None: ...


class ElapsedTicker:
    """Adds ``interval_ms`` to the elapsed counter every interval, on the running event loop."""

    def __init__(self, interval_ms: int = TICK_INTERVAL_MS) -> None:
        self._interval_ms = interval_ms
        self._elapsed_ms = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def elapsed_ms(self) -> int:
        return self._elapsed_ms

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        self.stop()
        self._elapsed_ms = 0
        self._task = asyncio.get_running_loop().create_task(self._tick())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def reset(self) -> None:
        self.stop()
        self._elapsed_ms = 0

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval_ms / 1000)
            self._elapsed_ms += self._interval_ms


def precheck_url(url: str) -> ErrorCode | None:
    """Cheap local check before bothering the proxy. The proxy re-validates everything."""
    if not url or not url.strip():
        return ErrorCode.INVALID_URL
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return ErrorCode.INVALID_URL
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return ErrorCode.INVALID_URL
    return None


class FetchLifecycle:
    """
    Idle -> Validating -> Fetching -> Parsing -> Complete, with Error reachable
    from Validating, Fetching and Parsing. Complete and Error accept a new
    attempt via begin(); nothing resumes a previous Fetching state.
    """

    def __init__(self, timeout_ms: int = 10_000, ticker: Ticker | None = None) -> None:
        self._timeout_ms = timeout_ms
        self._ticker: Ticker = ticker if ticker is not None else ElapsedTicker()
        self._state: FetchState = Idle()

    @property
    def state(self) -> FetchState:
        return self._state

    @property
    def elapsed_ms(self) -> int:
        return self._ticker.elapsed_ms

    def _require(self, *allowed: type[BaseModel]) -> None:
        if not isinstance(self._state, allowed):
            names = ", ".join(cls.__name__ for cls in allowed)
            raise InvalidTransition(
                f"cannot leave {type(self._state).__name__}; expected one of: {names}"
            )

    def _stop_ticker(self) -> None:
        if self._ticker.running:
            self._ticker.stop()

    def begin(self) -> None:
        """Start a new attempt. Elapsed time goes back to zero."""
        self._require(Idle, Complete, Error)
        self._ticker.reset()
        self._state = Validating()

    def set_fetching(self, url: str) -> None:
        self._require(Validating)
        self._state = Fetching(started_at=datetime.now(UTC), url=url)
        self._ticker.start()

    def set_parsing(self) -> None:
        self._require(Fetching)
        self._stop_ticker()
        self._state = Parsing()

    def set_complete(self, timing_ms: int) -> None:
        self._require(Fetching, Parsing)
        self._stop_ticker()
        self._state = Complete(timing_ms=timing_ms)

    def set_error(self, status_code: int, message: str = "", code: str | None = None) -> None:
        self._require(Validating, Fetching, Parsing)
        self._stop_ticker()
        classified = classify_error(status_code, message, code)
        canned = ERROR_MESSAGES[classified]
        self._state = Error(
            code=classified,
            message=canned.message,
            suggestion=canned.suggestion,
        )

    def reset(self) -> None:
        self._stop_ticker()
        self._ticker.reset()
        self._state = Idle()

    def status_message(self) -> ProgressMessage | None:
        if not isinstance(self._state, Fetching):
            return None
        return describe_progress(self.elapsed_ms, self._state.url, self._timeout_ms)

    async def run(self, url: str, client: ProxyClient) -> ProxyResponse | None:
        """Drive one attempt through the proxy. Returns the response, or None on error."""
        if not isinstance(self._state, (Idle, Complete, Error)):
            self.reset()
        self.begin()
        problem = precheck_url(url)
        if problem is not None:
            self.set_error(0, "", problem)
            return None

        self.set_fetching(url)
        try:
            response = await client.fetch(url)
        except ProxyError as exc:
            self.set_error(exc.status_code, exc.message, exc.code)
            return None
        except asyncio.CancelledError:
            self.reset()
            raise
        except Exception as exc:  # noqa: BLE001
            _logger.warning(
                "proxy_call_failed", extra={"error": f"{type(exc).__name__}: {exc}"}, exc_info=exc
            )
            self.set_error(0, "Network request failed", ErrorCode.NETWORK_ERROR)
            return None

        self.set_parsing()
        if not response.head:
            self.set_error(0, "Invalid response from proxy", ErrorCode.PARSE_ERROR)
            return None
        self.set_complete(response.timing)
        return response
