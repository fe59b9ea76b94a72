"""Optional shared-secret gate for the proxy endpoint."""

from __future__ import annotations

import hmac

_BEARER_PREFIX = "Bearer "


def safe_equal(presented: str, expected: str) -> bool:
    """Constant-time string comparison."""
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def bearer_token(authorization: str | None) -> str:
    """Token from an ``Authorization: Bearer <token>`` header, or empty string."""
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        return ""
    return authorization[len(_BEARER_PREFIX) :].strip()


def is_authorized(authorization: str | None, api_key: str | None) -> bool:
    """True when no key is configured, or the presented bearer token matches it."""
    if not api_key:
        return True
    token = bearer_token(authorization)
    return bool(token) and safe_equal(token, api_key)
