"""Closed error taxonomy shared by the proxy and its client.

Every failure that crosses the proxy boundary is one :class:`ErrorCode`. Each
code has an HTTP status and a canned message/suggestion pair; raw upstream
error text never leaves the process.
"""

from __future__ import annotations

from enum import StrEnum
from typing import NamedTuple


class ErrorCode(StrEnum):
    INVALID_URL = "INVALID_URL"
    PROTOCOL_BLOCKED = "PROTOCOL_BLOCKED"
    SSRF_BLOCKED = "SSRF_BLOCKED"
    DNS_FAILED = "DNS_FAILED"
    TIMEOUT = "TIMEOUT"
    TOO_MANY_REDIRECTS = "TOO_MANY_REDIRECTS"
    RESPONSE_TOO_LARGE = "RESPONSE_TOO_LARGE"
    UPSTREAM_REFUSED = "UPSTREAM_REFUSED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    # Client-side only: the proxy itself was unreachable or answered garbage
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"


class ErrorMessage(NamedTuple):
    message: str
    suggestion: str


HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_URL: 400,
    ErrorCode.PROTOCOL_BLOCKED: 400,
    ErrorCode.SSRF_BLOCKED: 400,
    ErrorCode.DNS_FAILED: 400,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.TOO_MANY_REDIRECTS: 502,
    ErrorCode.RESPONSE_TOO_LARGE: 413,
    ErrorCode.UPSTREAM_REFUSED: 502,
    ErrorCode.UPSTREAM_ERROR: 502,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NETWORK_ERROR: 0,
    ErrorCode.PARSE_ERROR: 0,
}

ERROR_MESSAGES: dict[ErrorCode, ErrorMessage] = {
    ErrorCode.INVALID_URL: ErrorMessage(
        "That doesn't look like a valid URL.",
        "Enter a full URL starting with https://, or paste the HTML directly.",
    ),
    ErrorCode.PROTOCOL_BLOCKED: ErrorMessage(
        "That URL scheme isn't supported.",
        "Only https:// URLs can be fetched. Paste the HTML directly for anything else.",
    ),
    ErrorCode.SSRF_BLOCKED: ErrorMessage(
        "That URL can't be fetched.",
        "Only public URLs can be fetched. Internal addresses, localhost, and private IP ranges are blocked.",
    ),
    ErrorCode.DNS_FAILED: ErrorMessage(
        "Could not resolve that hostname.",
        "The domain doesn't appear to exist. Check the URL for typos.",
    ),
    ErrorCode.TIMEOUT: ErrorMessage(
        "The request timed out.",
        "The target site did not respond in time. Try again or paste the content directly.",
    ),
    ErrorCode.TOO_MANY_REDIRECTS: ErrorMessage(
        "The URL redirected too many times.",
        "Try the final destination URL directly, or paste the page source.",
    ),
    ErrorCode.RESPONSE_TOO_LARGE: ErrorMessage(
        "Response was too large to process.",
        "The target may be serving a file download rather than a web page. Paste the <head> section directly.",
    ),
    ErrorCode.UPSTREAM_REFUSED: ErrorMessage(
        "The target server refused the connection.",
        "The site may be down or blocking automated requests. Try again later or paste the content directly.",
    ),
    ErrorCode.UPSTREAM_ERROR: ErrorMessage(
        "Could not fetch that URL.",
        "The target site returned an error. Check that the URL is correct and publicly accessible.",
    ),
    ErrorCode.RATE_LIMITED: ErrorMessage(
        "Rate limit reached.",
        "Too many requests in a short period. Wait a moment and try again, or paste HTML directly meanwhile.",
    ),
    ErrorCode.INTERNAL_ERROR: ErrorMessage(
        "Something went wrong on our end.",
        "This is not a problem with the target URL. Try again in a moment.",
    ),
    ErrorCode.INVALID_REQUEST: ErrorMessage(
        "The request was malformed.",
        'Send a JSON object with a single "url" string field.',
    ),
    ErrorCode.UNAUTHORIZED: ErrorMessage(
        "Unauthorized.",
        "A valid API key is required to use this proxy.",
    ),
    ErrorCode.NETWORK_ERROR: ErrorMessage(
        "Network request failed.",
        "Check your internet connection. The proxy may be temporarily unavailable.",
    ),
    ErrorCode.PARSE_ERROR: ErrorMessage(
        "Couldn't read the proxy response.",
        "The response didn't contain HTML to analyse. Check that the URL points to a web page.",
    ),
}


class FetchError(Exception):
    """A classified failure. ``detail`` is for server logs only and is never serialized."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        *,
        hop: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.code = code
        self.message = message or ERROR_MESSAGES[code].message
        self.hop = hop
        self.detail = detail
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.code]

    @property
    def suggestion(self) -> str:
        return ERROR_MESSAGES[self.code].suggestion

    def __repr__(self) -> str:
        return f"FetchError(code={self.code!s}, hop={self.hop!r}, message={self.message!r})"


# Status signals checked before any message text.
_STATUS_CODES: dict[int, ErrorCode] = {
    429: ErrorCode.RATE_LIMITED,
    504: ErrorCode.TIMEOUT,
    408: ErrorCode.TIMEOUT,
    413: ErrorCode.RESPONSE_TOO_LARGE,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.UNAUTHORIZED,
    502: ErrorCode.UPSTREAM_ERROR,
    503: ErrorCode.UPSTREAM_ERROR,
}

# Last resort for responses that carry no structured code. Order matters.
MESSAGE_FALLBACKS: dict[int, tuple[tuple[tuple[str, ...], ErrorCode], ...]] = {
    400: (
        (("redirect", "private ip", "internal address", "public url"), ErrorCode.SSRF_BLOCKED),
        (("protocol",), ErrorCode.PROTOCOL_BLOCKED),
        (("resolve hostname",), ErrorCode.DNS_FAILED),
        (("unexpected field", "request body"), ErrorCode.INVALID_REQUEST),
        (("invalid url", "url format", "url is required", "maximum length"), ErrorCode.INVALID_URL),
    ),
    0: (
        (("timed out", "timeout"), ErrorCode.TIMEOUT),
        (("network",), ErrorCode.NETWORK_ERROR),
    ),
}

_DEFAULT_BY_STATUS: dict[int, ErrorCode] = {
    400: ErrorCode.INVALID_URL,
    0: ErrorCode.UPSTREAM_ERROR,
}


def classify_error(
    status_code: int,
    message: str = "",
    code: str | None = None,
) -> ErrorCode:
    """Map a proxy outcome to an :class:`ErrorCode`.

    A recognised structured ``code`` wins, then the HTTP status, and only then
    substring matching on ``message``. Pure and deterministic.
    """
    if code is not None and code in ErrorCode.__members__:
        return ErrorCode(code)
    if status_code in _STATUS_CODES:
        return _STATUS_CODES[status_code]
    if status_code in MESSAGE_FALLBACKS:
        lowered = message.lower()
        for needles, fallback in MESSAGE_FALLBACKS[status_code]:
            if any(needle in lowered for needle in needles):
                return fallback
        return _DEFAULT_BY_STATUS[status_code]
    if status_code >= 500:
        return ErrorCode.INTERNAL_ERROR
    return ErrorCode.UPSTREAM_ERROR
