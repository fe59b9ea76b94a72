"""SSRF-oriented URL validation: shape, scheme, blocked hostnames and resolved addresses.

The validator never caches. DNS answers can change between calls, so the
fetcher runs it again for every redirect hop.
"""

from __future__ import annotations

import asyncio
import socket
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

from fetch_proxy.config import ValidationEnvironment
from fetch_proxy.errors import ErrorCode
from fetch_proxy.ip_classifier import is_private, parse_address
from fetch_proxy.models import ValidationVerdict

DEFAULT_MAX_URL_LENGTH = 2048

WEB_SCHEMES = frozenset({"http", "https"})

BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "localhost.localdomain",
        "ip6-localhost",
        "ip6-loopback",
        "127.0.0.1",
        "0.0.0.0",
        "::1",
        "::",
        "metadata",
        "metadata.google.internal",
        "metadata.azure.internal",
        "169.254.169.254",
    }
)


@runtime_checkable
class Resolver(Protocol):
    """Resolves a hostname to every A and AAAA address it has."""

    async def resolve(self, hostname: str) -> list[str]:
        """Return all addresses (both families). Empty list if nothing resolved."""
        ...


class SystemResolver:
    """Resolver backed by the event loop's ``getaddrinfo``, one lookup per address family."""

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self._timeout = timeout_seconds

    async def _lookup(self, hostname: str, family: socket.AddressFamily) -> list[str]:
        loop = asyncio.get_running_loop()
        try:
            async with asyncio.timeout(self._timeout):
                infos = await loop.getaddrinfo(
                    hostname, None, family=family, type=socket.SOCK_STREAM
                )
        except (socket.gaierror, UnicodeError, TimeoutError):
            return []
        return [str(sockaddr[0]) for *_, sockaddr in infos]

    async def resolve(self, hostname: str) -> list[str]:
        addresses: list[str] = []
        for family in (socket.AF_INET, socket.AF_INET6):
            for address in await self._lookup(hostname, family):
                if address not in addresses:
                    addresses.append(address)
        return addresses


def _normalize_hostname(hostname: str) -> str:
    return hostname.lower().rstrip(".")


def _protocol_blocked(scheme: str, environment: ValidationEnvironment) -> ValidationVerdict:
    allowed = ", ".join(sorted(environment.allowed_schemes))
    return ValidationVerdict.reject(
        ErrorCode.PROTOCOL_BLOCKED,
        f"Protocol not allowed: {scheme}. Permitted: {allowed}",
    )


async def validate(
    candidate: str,
    environment: ValidationEnvironment,
    *,
    max_url_length: int = DEFAULT_MAX_URL_LENGTH,
    resolver: Resolver | None = None,
) -> ValidationVerdict:
    """Decide whether ``candidate`` may be fetched. Each failed check has its own reason."""
    if not isinstance(candidate, str) or not candidate.strip():
        return ValidationVerdict.reject(ErrorCode.INVALID_URL, "URL is required")
    if len(candidate) > max_url_length:
        return ValidationVerdict.reject(
            ErrorCode.INVALID_URL,
            f"URL exceeds maximum length of {max_url_length} characters",
        )

    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
        _ = parts.port  # raises on a non-numeric or out-of-range port
    except ValueError:
        return ValidationVerdict.reject(ErrorCode.INVALID_URL, "Invalid URL format")
    if not parts.scheme or candidate != candidate.strip():
        return ValidationVerdict.reject(ErrorCode.INVALID_URL, "Invalid URL format")

    scheme = parts.scheme.lower()
    if scheme not in WEB_SCHEMES:
        return _protocol_blocked(scheme, environment)
    if not hostname:
        return ValidationVerdict.reject(ErrorCode.INVALID_URL, "Invalid URL format")
    if parts.username is not None or parts.password is not None:
        return ValidationVerdict.reject(
            ErrorCode.INVALID_URL, "URLs with embedded credentials are not allowed"
        )

    # Internal targets are reported as such even when the scheme would also be refused.
    host = _normalize_hostname(hostname)
    if host in BLOCKED_HOSTNAMES or host.endswith(".localhost"):
        return ValidationVerdict.reject(
            ErrorCode.SSRF_BLOCKED, "Internal addresses are not allowed"
        )
    literal = parse_address(host)
    if literal is not None and is_private(literal):
        return ValidationVerdict.reject(
            ErrorCode.SSRF_BLOCKED,
            f"URL points to a private IP address ({literal})",
        )

    if scheme not in environment.allowed_schemes:
        return _protocol_blocked(scheme, environment)
    if literal is not None:
        return ValidationVerdict.accept((str(literal),))

    addresses = await (resolver or SystemResolver()).resolve(host)
    if not addresses:
        return ValidationVerdict.reject(
            ErrorCode.DNS_FAILED,
            f"Could not resolve hostname '{host}'",
        )
    for address in addresses:
        if is_private(address):
            return ValidationVerdict.reject(
                ErrorCode.SSRF_BLOCKED,
                f"URL resolves to a private IP address ({address})",
            )
    return ValidationVerdict.accept(tuple(addresses))


class UrlValidator:
    """Binds an environment, length limit and resolver so callers can validate by URL alone."""

    def __init__(
        self,
        environment: ValidationEnvironment,
        *,
        max_url_length: int = DEFAULT_MAX_URL_LENGTH,
        resolver: Resolver | None = None,
    ) -> None:
        self._environment = environment
        self._max_url_length = max_url_length
        self._resolver = resolver if resolver is not None else SystemResolver()

    @property
    def environment(self) -> ValidationEnvironment:
        return self._environment

    async def validate(self, candidate: str) -> ValidationVerdict:
        return await validate(
            candidate,
            self._environment,
            max_url_length=self._max_url_length,
            resolver=self._resolver,
        )
