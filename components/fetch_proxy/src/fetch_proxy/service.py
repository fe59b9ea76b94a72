"""One proxy request end to end: gate, parse, fetch, sanitize."""

from __future__ import annotations

from typing import Any, NoReturn

import httpx
from pydantic import ValidationError

from fetch_proxy.auth import is_authorized
from fetch_proxy.config import ProxyConfig
from fetch_proxy.errors import ErrorCode, FetchError
from fetch_proxy.events import RequestContext, log_rejected_request
from fetch_proxy.fetcher import RedirectBoundedFetcher
from fetch_proxy.metrics import requests_rejected_total
from fetch_proxy.models import FetchRequest, ProxyResponse
from fetch_proxy.sanitizer import extract_body_snippet, extract_head
from fetch_proxy.url_validator import Resolver, SystemResolver, UrlValidator

_ALLOWED_FIELDS = frozenset(FetchRequest.model_fields)


class FetchProxyService:
    """Holds the immutable policy objects; each :meth:`handle` call is independent."""

    def __init__(
        self,
        config: ProxyConfig,
        *,
        resolver: Resolver | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._api_key = config.api_key.get_secret_value() if config.api_key else None
        self._validator = UrlValidator(
            config.validation_environment,
            max_url_length=config.max_url_length,
            resolver=resolver or SystemResolver(config.dns_timeout_seconds),
        )
        self._fetcher = RedirectBoundedFetcher(config.fetch_policy, self._validator, client)

    @property
    def config(self) -> ProxyConfig:
        return self._config

    def authorize(self, authorization: str | None, context: RequestContext) -> None:
        if is_authorized(authorization, self._api_key):
            return
        self._reject(context, ErrorCode.UNAUTHORIZED, "missing or invalid bearer token")

    def parse_request(self, payload: Any, context: RequestContext) -> FetchRequest:
        """Validate the request body against the strict one-field schema."""
        if not isinstance(payload, dict):
            self._reject(context, ErrorCode.INVALID_REQUEST, "request body is not a JSON object")
        unexpected = sorted(str(key) for key in payload if key not in _ALLOWED_FIELDS)
        if unexpected:
            names = ", ".join(unexpected)[:200]
            self._reject(
                context,
                ErrorCode.INVALID_REQUEST,
                f"unexpected fields: {names}",
                message=f"Unexpected fields in request: {names}",
            )
        try:
            return FetchRequest.model_validate(payload)
        except ValidationError:
            self._reject(
                context,
                ErrorCode.INVALID_REQUEST,
                'missing or non-string "url"',
                message='Missing or invalid "url" field. Must be a string.',
            )

    async def fetch(self, request: FetchRequest, context: RequestContext) -> ProxyResponse:
        result = await self._fetcher.fetch(request.url, context)
        return ProxyResponse(
            url=request.url,
            final_url=result.final_url,
            redirect_chain=list(result.redirect_chain),
            status_code=result.status_code,
            content_type=result.content_type,
            head=extract_head(result.html),
            body_snippet=extract_body_snippet(result.html, self._config.body_snippet_length),
            fetched_at=result.fetched_at,
            timing=result.timing_ms,
        )

    async def handle(
        self,
        payload: Any,
        *,
        authorization: str | None = None,
        context: RequestContext | None = None,
    ) -> ProxyResponse:
        """Run the whole pipeline for one request. Raises :class:`FetchError` on failure."""
        context = context or RequestContext()
        self.authorize(authorization, context)
        request = self.parse_request(payload, context)
        return await self.fetch(request, context)

    def _reject(
        self,
        context: RequestContext,
        code: ErrorCode,
        reason: str,
        *,
        message: str | None = None,
    ) -> NoReturn:
        requests_rejected_total.labels(code=code.value).inc()
        log_rejected_request(context, code=code.value, reason=reason)
        raise FetchError(code, message, detail=reason)
