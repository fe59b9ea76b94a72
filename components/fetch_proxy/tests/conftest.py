"""Fixtures for fetch proxy tests: fake DNS, mock HTTP transports, policy objects."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import httpx
import pytest
from fakes import PUBLIC_V4, PUBLIC_V6, StaticResolver
from fetch_proxy.config import FetchPolicy, ProxyConfig, ValidationEnvironment
from fetch_proxy.url_validator import UrlValidator

Handler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


@pytest.fixture
def resolver() -> StaticResolver:
    return StaticResolver(
        {
            "example.com": [PUBLIC_V4, PUBLIC_V6],
            "www.example.com": [PUBLIC_V4],
            "cdn.example.net": ["151.101.1.69"],
            "v6only.example.org": [PUBLIC_V6],
            "internal.example.com": ["192.168.1.10"],
            "mixed.example.com": [PUBLIC_V4, "10.0.0.7"],
            "ula.example.com": ["fd12:3456::1"],
            "mapped.example.com": ["::ffff:127.0.0.1"],
        }
    )


@pytest.fixture
def prod_env() -> ValidationEnvironment:
    return ValidationEnvironment(is_production=True, allow_http_in_dev=True)


@pytest.fixture
def dev_env() -> ValidationEnvironment:
    return ValidationEnvironment(is_production=False, allow_http_in_dev=True)


@pytest.fixture
def policy() -> FetchPolicy:
    return FetchPolicy(timeout_ms=2_000, max_redirects=5, max_bytes=4_096, user_agent="TestBot/1.0")


@pytest.fixture
def validator(dev_env: ValidationEnvironment, resolver: StaticResolver) -> UrlValidator:
    return UrlValidator(dev_env, resolver=resolver)


@pytest.fixture
def mock_client() -> Callable[[Handler], httpx.AsyncClient]:
    """Factory: an AsyncClient whose requests are answered by ``handler``."""

    def factory(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def dev_config() -> ProxyConfig:
    return ProxyConfig(
        _env_file=None,
        environment="development",
        allow_http_in_dev=True,
        request_timeout_ms=2_000,
        max_response_bytes=4_096,
        user_agent="TestBot/1.0",
    )
