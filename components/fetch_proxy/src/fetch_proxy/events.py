"""Structured log events for proxy requests.

One event per terminal outcome. URLs are redacted before logging and caller
supplied strings are truncated; response bodies are never logged.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from core import SECURITY, get_logger

_logger = get_logger("fetch_proxy")

SENSITIVE_QUERY_PARAMS = frozenset(
    {
        "token",
        "key",
        "apikey",
        "api_key",
        "secret",
        "password",
        "pass",
        "pwd",
        "auth",
        "authorization",
        "session",
        "sid",
        "jwt",
        "bearer",
        "oauth",
    }
)
REDACTED = "[REDACTED]"


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RequestContext:
    """Who asked for a fetch. Attached to every event for correlation."""

    request_id: str = field(default_factory=new_request_id)
    client_ip: str | None = None
    user_agent: str | None = None


def truncate(value: str | None, max_length: int = 200) -> str | None:
    if not value:
        return None
    if len(value) <= max_length:
        return value
    return value[:max_length] + "..."


def redact_url(url: str) -> str:
    """Replace values of credential-looking query parameters and drop userinfo."""
    try:
        parts = urlsplit(url)
        netloc = parts.netloc.rsplit("@", 1)[-1]
        query = urlencode(
            [
                (name, REDACTED if name.lower() in SENSITIVE_QUERY_PARAMS else value)
                for name, value in parse_qsl(parts.query, keep_blank_values=True)
            ],
            safe="[]",
        )
        return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
    except ValueError:
        return truncate(url, 100) or ""


def _base_fields(context: RequestContext, url: str) -> dict[str, object]:
    return {
        "request_id": context.request_id,
        "url": redact_url(url),
        "ip": context.client_ip,
        "user_agent": truncate(context.user_agent, 100),
    }


def log_success(
    context: RequestContext,
    *,
    url: str,
    final_url: str,
    status_code: int,
    timing_ms: int,
    redirect_count: int,
    response_size: int,
) -> None:
    _logger.info(
        "fetch_success",
        extra={
            **_base_fields(context, url),
            "final_url": redact_url(final_url) if final_url != url else None,
            "status_code": status_code,
            "timing": timing_ms,
            "redirect_count": redirect_count,
            "response_size": response_size,
        },
    )


def log_error(
    context: RequestContext,
    *,
    url: str,
    code: str,
    error: str,
    timing_ms: int | None = None,
    final_url: str | None = None,
    redirect_count: int = 0,
    response_size: int | None = None,
    exc_info: BaseException | None = None,
) -> None:
    _logger.error(
        "fetch_error",
        extra={
            **_base_fields(context, url),
            "final_url": redact_url(final_url) if final_url and final_url != url else None,
            "code": code,
            "error": truncate(error, 500),
            "timing": timing_ms,
            "redirect_count": redirect_count,
            "response_size": response_size,
        },
        exc_info=exc_info,
    )


def log_blocked(
    context: RequestContext,
    *,
    url: str,
    code: str,
    reason: str,
    hop: int | None = None,
    timing_ms: int | None = None,
    redirect_count: int = 0,
) -> None:
    _logger.log(
        SECURITY,
        "request_blocked",
        extra={
            **_base_fields(context, url),
            "blocked": True,
            "code": code,
            "reason": truncate(reason, 500),
            "hop": hop,
            "timing": timing_ms,
            "redirect_count": redirect_count,
        },
    )


def log_rejected_request(context: RequestContext, *, code: str, reason: str) -> None:
    """Request refused before any URL was looked at (bad body, missing token)."""
    _logger.warning(
        "request_rejected",
        extra={
            "request_id": context.request_id,
            "ip": context.client_ip,
            "user_agent": truncate(context.user_agent, 100),
            "code": code,
            "reason": truncate(reason, 500),
        },
    )
