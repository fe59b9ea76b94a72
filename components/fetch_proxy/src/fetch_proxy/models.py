"""Data models for proxy requests, fetch results and the wire responses."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from fetch_proxy.errors import ErrorCode


class FetchRequest(BaseModel):
    """Inbound request body. Anything besides ``url`` is rejected."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    url: str = Field(description="Absolute URL to fetch")


class ValidationVerdict(BaseModel):
    """Outcome of validating one URL. Built fresh per call, never cached."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = Field(default=None, description="Why the URL was rejected")
    code: ErrorCode | None = Field(default=None)
    addresses: tuple[str, ...] = Field(
        default=(), description="Resolved addresses that passed classification"
    )

    @classmethod
    def accept(cls, addresses: tuple[str, ...]) -> ValidationVerdict:
        return cls(allowed=True, addresses=addresses)

    @classmethod
    def reject(cls, code: ErrorCode, reason: str) -> ValidationVerdict:
        return cls(allowed=False, code=code, reason=reason)


class RedirectHop(BaseModel):
    """One 3xx response in a redirect chain."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: int
    from_url: str = Field(alias="from")
    to: str


class FetchResult(BaseModel):
    """Final response of a redirect-bounded fetch. Server-internal: carries the raw HTML."""

    model_config = ConfigDict(frozen=True)

    requested_url: str
    final_url: str
    status_code: int
    content_type: str
    html: str = Field(repr=False)
    redirect_chain: tuple[RedirectHop, ...] = Field(default=())
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    timing_ms: int
    response_bytes: int


class ProxyResponse(BaseModel):
    """Success payload returned to the caller."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ok: Literal[True] = Field(default=True)
    url: str
    final_url: str = Field(alias="finalUrl")
    redirect_chain: list[RedirectHop] = Field(default_factory=list, alias="redirectChain")
    status_code: int = Field(alias="statusCode")
    content_type: str = Field(alias="contentType")
    head: str
    body_snippet: str = Field(alias="bodySnippet")
    fetched_at: datetime = Field(alias="fetchedAt")
    timing: int = Field(description="Total fetch time in milliseconds")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ErrorDetail(BaseModel):
    code: ErrorCode
    message: str
    suggestion: str
    hop: int | None = Field(default=None)


class ErrorBody(BaseModel):
    """Failure payload returned to the caller. Canned text only."""

    ok: Literal[False] = Field(default=False)
    error: ErrorDetail

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
