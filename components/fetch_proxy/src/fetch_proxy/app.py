"""FastAPI application exposing the fetch proxy.

POST /api/fetch with body ``{"url": "..."}``. Rate limiting happens at the
edge in front of this app, not here.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from core import get_logger
from fetch_proxy.config import ProxyConfig
from fetch_proxy.errors import ErrorCode, FetchError
from fetch_proxy.events import RequestContext
from fetch_proxy.models import ErrorBody, ErrorDetail
from fetch_proxy.service import FetchProxyService

COMPONENT = "fetch_proxy"
_logger = get_logger(COMPONENT)

REQUEST_ID_HEADER = "X-Request-ID"


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def error_response(exc: FetchError, context: RequestContext) -> JSONResponse:
    body = ErrorBody(
        error=ErrorDetail(
            code=exc.code,
            message=exc.message,
            suggestion=exc.suggestion,
            hop=exc.hop,
        )
    )
    return JSONResponse(
        body.to_wire(),
        status_code=exc.status_code,
        headers={REQUEST_ID_HEADER: context.request_id},
    )


def create_app(
    config: ProxyConfig | None = None,
    service: FetchProxyService | None = None,
) -> FastAPI:
    config = config or ProxyConfig()
    service = service or FetchProxyService(config)

    app = FastAPI(title="fetch-proxy", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allowed_origins,
        allow_methods=["POST"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/fetch")
    async def fetch_url(request: Request) -> JSONResponse:
        context = RequestContext(
            client_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        try:
            response = await service.handle(
                payload,
                authorization=request.headers.get("authorization"),
                context=context,
            )
        except FetchError as exc:
            return error_response(exc, context)
        except Exception:  # noqa: BLE001
            _logger.exception(
                "Unhandled error in fetch endpoint",
                extra={"request_id": context.request_id},
            )
            return error_response(FetchError(ErrorCode.INTERNAL_ERROR), context)
        return JSONResponse(
            response.to_wire(),
            headers={REQUEST_ID_HEADER: context.request_id},
        )

    return app
