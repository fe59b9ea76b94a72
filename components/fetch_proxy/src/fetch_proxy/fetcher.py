"""Redirect-bounded HTTP fetch with per-hop URL validation, deadline and byte cap."""

from __future__ import annotations

import asyncio
import socket
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from ipaddress import IPv4Address, IPv6Address
from urllib.parse import urljoin

import httpx

from fetch_proxy.config import FetchPolicy
from fetch_proxy.errors import ERROR_MESSAGES, ErrorCode, FetchError
from fetch_proxy.events import RequestContext, log_blocked, log_error, log_success
from fetch_proxy.ip_classifier import is_private, parse_address
from fetch_proxy.metrics import (
    fetch_duration_seconds,
    fetches_total,
    hops_blocked_total,
    redirects_per_fetch,
    response_size_bytes,
)
from fetch_proxy.models import FetchResult, RedirectHop, ValidationVerdict
from fetch_proxy.url_validator import UrlValidator

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
DEFAULT_CONTENT_TYPE = "text/html"

# Never forwarded to a target, whatever the client was configured with.
_CREDENTIAL_HEADERS = ("cookie", "authorization", "proxy-authorization")


@dataclass
class _Attempt:
    """Progress of one fetch, kept so failures can be logged with context."""

    requested_url: str
    current_url: str
    started: float = field(default_factory=time.perf_counter)
    chain: list[RedirectHop] = field(default_factory=list)
    response_bytes: int | None = None
    blocked: bool = False

    @property
    def hop(self) -> int:
        return len(self.chain)

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


@dataclass(frozen=True)
class _HopResponse:
    status_code: int
    location: str | None = None
    content_type: str = DEFAULT_CONTENT_TYPE
    body: bytes = b""
    encoding: str | None = None


def _caused_by_dns(exc: BaseException) -> bool:
    seen: BaseException | None = exc
    while seen is not None:
        if isinstance(seen, socket.gaierror):
            return True
        seen = seen.__cause__ or seen.__context__
    return False


def _unmapped(
    address: IPv4Address | IPv6Address | None,
) -> IPv4Address | IPv6Address | None:
    if isinstance(address, IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def _decode(body: bytes, encoding: str | None) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def _blocked_message(code: ErrorCode, hop: int) -> str:
    message = ERROR_MESSAGES[code].message
    if hop == 0:
        return message
    return f"Redirect {hop} was blocked. {message}"


class RedirectBoundedFetcher:
    """Fetches one URL, following at most ``policy.max_redirects`` validated redirects.

    Redirects are never followed by httpx itself: every ``Location`` is resolved
    here, validated like the original URL, and only then requested.
    """

    def __init__(
        self,
        policy: FetchPolicy,
        validator: UrlValidator,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._policy = policy
        self._validator = validator
        self._client = client
        self._headers = {
            "User-Agent": policy.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        }

    @property
    def policy(self) -> FetchPolicy:
        return self._policy

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=False,
            trust_env=False,
            timeout=self._policy.timeout_seconds,
        )

    async def fetch(self, url: str, context: RequestContext | None = None) -> FetchResult:
        """Fetch ``url``. Raises :class:`FetchError` for every failure."""
        context = context or RequestContext()
        attempt = _Attempt(requested_url=url, current_url=url)
        try:
            if self._client is not None:
                result = await self._follow(self._client, attempt)
            else:
                async with self._build_client() as client:
                    result = await self._follow(client, attempt)
        except FetchError as exc:
            self._record_failure(context, attempt, exc)
            raise
        except Exception as exc:  # noqa: BLE001
            error = FetchError(ErrorCode.INTERNAL_ERROR, detail=f"{type(exc).__name__}: {exc}")
            self._record_failure(context, attempt, error, exc_info=exc)
            raise error from exc

        fetches_total.labels(outcome="ok").inc()
        fetch_duration_seconds.observe(result.timing_ms / 1000)
        response_size_bytes.observe(result.response_bytes)
        redirects_per_fetch.observe(len(result.redirect_chain))
        log_success(
            context,
            url=url,
            final_url=result.final_url,
            status_code=result.status_code,
            timing_ms=result.timing_ms,
            redirect_count=len(result.redirect_chain),
            response_size=result.response_bytes,
        )
        return result

    async def _follow(self, client: httpx.AsyncClient, attempt: _Attempt) -> FetchResult:
        while True:
            hop = attempt.hop
            verdict = await self._validator.validate(attempt.current_url)
            if not verdict.allowed:
                attempt.blocked = True
                code = verdict.code or ErrorCode.INVALID_URL
                raise FetchError(
                    code,
                    _blocked_message(code, hop),
                    hop=hop or None,
                    detail=verdict.reason,
                )

            response = await self._request_hop(client, attempt, verdict)

            if response.location is not None:
                if len(attempt.chain) >= self._policy.max_redirects:
                    raise FetchError(
                        ErrorCode.TOO_MANY_REDIRECTS,
                        hop=hop,
                        detail=f"more than {self._policy.max_redirects} redirects",
                    )
                target = urljoin(attempt.current_url, response.location)
                attempt.chain.append(
                    RedirectHop(
                        status=response.status_code,
                        from_url=attempt.current_url,
                        to=target,
                    )
                )
                attempt.current_url = target
                continue

            attempt.response_bytes = len(response.body)
            return FetchResult(
                requested_url=attempt.requested_url,
                final_url=attempt.current_url,
                status_code=response.status_code,
                content_type=response.content_type,
                html=_decode(response.body, response.encoding),
                redirect_chain=tuple(attempt.chain),
                fetched_at=datetime.now(UTC),
                timing_ms=attempt.elapsed_ms(),
                response_bytes=len(response.body),
            )

    async def _request_hop(
        self,
        client: httpx.AsyncClient,
        attempt: _Attempt,
        verdict: ValidationVerdict,
    ) -> _HopResponse:
        """One GET under the policy deadline, with transport failures classified."""
        hop = attempt.hop
        try:
            async with asyncio.timeout(self._policy.timeout_seconds):
                return await self._get(client, attempt, verdict)
        except FetchError as exc:
            if exc.hop is None and hop:
                exc.hop = hop
            raise
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise FetchError(
                ErrorCode.TIMEOUT,
                hop=hop or None,
                detail=f"no response within {self._policy.timeout_ms}ms",
            ) from exc
        except httpx.ConnectError as exc:
            code = ErrorCode.DNS_FAILED if _caused_by_dns(exc) else ErrorCode.UPSTREAM_REFUSED
            raise FetchError(code, hop=hop or None, detail=f"ConnectError: {exc}") from exc
        except httpx.InvalidURL as exc:
            raise FetchError(ErrorCode.INVALID_URL, hop=hop or None, detail=str(exc)) from exc
        except httpx.RequestError as exc:
            raise FetchError(
                ErrorCode.UPSTREAM_ERROR,
                hop=hop or None,
                detail=f"{type(exc).__name__}: {exc}",
            ) from exc

    async def _get(
        self, client: httpx.AsyncClient, attempt: _Attempt, verdict: ValidationVerdict
    ) -> _HopResponse:
        request = client.build_request("GET", attempt.current_url, headers=self._headers)
        for name in _CREDENTIAL_HEADERS:
            request.headers.pop(name, None)
        response = await client.send(request, stream=True, follow_redirects=False)
        try:
            self._check_peer(response, verdict)
            status = response.status_code
            location = response.headers.get("location")
            if status in REDIRECT_STATUSES and location:
                return _HopResponse(status_code=status, location=location)
            if status >= 400:
                raise FetchError(ErrorCode.UPSTREAM_ERROR, detail=f"target returned HTTP {status}")
            body = await self._read_capped(response, attempt)
            return _HopResponse(
                status_code=status,
                content_type=response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
                body=body,
                encoding=response.charset_encoding,
            )
        finally:
            await response.aclose()

    async def _read_capped(self, response: httpx.Response, attempt: _Attempt) -> bytes:
        limit = self._policy.max_bytes
        declared = response.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            attempt.response_bytes = int(declared)
            raise FetchError(
                ErrorCode.RESPONSE_TOO_LARGE,
                detail=f"declared {declared} bytes, limit {limit}",
            )
        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            attempt.response_bytes = len(body)
            if len(body) > limit:
                raise FetchError(
                    ErrorCode.RESPONSE_TOO_LARGE,
                    detail=f"read more than {limit} bytes",
                )
        return bytes(body)

    def _check_peer(self, response: httpx.Response, verdict: ValidationVerdict) -> None:
        """Refuse a connection whose peer is private or was not among the validated addresses.

        httpcore exposes the connected address as ``server_addr`` on the
        ``network_stream`` extension. Responses from transports without a
        network stream (mock and ASGI transports) are not checked.
        """
        stream = response.extensions.get("network_stream")
        if stream is None:
            return
        peer = stream.get_extra_info("server_addr")
        if not peer:
            return
        address = _unmapped(parse_address(str(peer[0])))
        if address is None or is_private(address):
            raise FetchError(
                ErrorCode.SSRF_BLOCKED,
                detail=f"connected peer {peer[0]} is private (DNS changed after validation)",
            )
        validated = {_unmapped(parse_address(item)) for item in verdict.addresses}
        if address not in validated:
            raise FetchError(
                ErrorCode.SSRF_BLOCKED,
                detail=f"connected peer {address} was not among the validated addresses",
            )

    def _record_failure(
        self,
        context: RequestContext,
        attempt: _Attempt,
        error: FetchError,
        exc_info: BaseException | None = None,
    ) -> None:
        fetches_total.labels(outcome=error.code.value).inc()
        timing_ms = attempt.elapsed_ms()
        if attempt.blocked or error.code is ErrorCode.SSRF_BLOCKED:
            hops_blocked_total.labels(
                code=error.code.value,
                stage="redirect" if attempt.hop else "origin",
            ).inc()
            log_blocked(
                context,
                url=attempt.requested_url,
                code=error.code.value,
                reason=error.detail or error.message,
                hop=error.hop,
                timing_ms=timing_ms,
                redirect_count=attempt.hop,
            )
            return
        log_error(
            context,
            url=attempt.requested_url,
            code=error.code.value,
            error=error.detail or error.message,
            timing_ms=timing_ms,
            final_url=attempt.current_url,
            redirect_count=attempt.hop,
            response_size=attempt.response_bytes,
            exc_info=exc_info,
        )
