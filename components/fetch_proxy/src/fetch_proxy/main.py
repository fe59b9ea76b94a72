"""Fetch proxy: serve POST /api/fetch over HTTP."""

from __future__ import annotations

import logging

import uvicorn

from core import configure_logging, get_logger
from fetch_proxy.app import COMPONENT, create_app
from fetch_proxy.config import ProxyConfig

_logger = get_logger(COMPONENT)


def main() -> None:
    config = ProxyConfig()
    configure_logging(level=config.log_level.upper(), fmt=config.log_format)
    # httpx logs full request URLs at INFO; events.py logs redacted ones instead.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _logger.info(
        "Fetch proxy starting",
        extra={
            "environment": config.environment,
            "host": config.host,
            "port": config.port,
            "request_timeout_ms": config.request_timeout_ms,
            "max_redirects": config.max_redirects,
            "max_response_bytes": config.max_response_bytes,
            "auth_enabled": config.api_key is not None,
        },
    )

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_config=None,
        proxy_headers=True,
    )
    _logger.info("Shutting down")


if __name__ == "__main__":
    main()
