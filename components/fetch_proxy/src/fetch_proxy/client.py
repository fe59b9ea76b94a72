"""HTTP client for the proxy endpoint, as used by the fetch lifecycle."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError

from fetch_proxy.errors import ErrorCode
from fetch_proxy.models import ProxyResponse

DEFAULT_ENDPOINT = "/api/fetch"


class ProxyError(Exception):
    """The proxy call failed. ``status_code`` is 0 when no HTTP response arrived."""

    def __init__(self, status_code: int, message: str, code: str | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(message)


def _error_fields(response: httpx.Response) -> tuple[str | None, str]:
    """Pull ``(code, message)`` out of an error body, tolerating non-JSON bodies."""
    try:
        data: Any = response.json()
    except ValueError:
        return None, response.reason_phrase or "Request failed"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message")
        return (
            code if isinstance(code, str) else None,
            message if isinstance(message, str) else "Request failed",
        )
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return None, data["message"]
    return None, response.reason_phrase or "Request failed"


class ProxyClient:
    """Posts ``{"url": ...}`` to the proxy and returns the parsed :class:`ProxyResponse`."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str = DEFAULT_ENDPOINT,
        api_key: str | None = None,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    async def fetch(self, url: str) -> ProxyResponse:
        try:
            response = await self._client.post(
                self._endpoint, json={"url": url}, headers=self._headers
            )
        except httpx.TimeoutException as exc:
            raise ProxyError(0, "Request timed out", ErrorCode.TIMEOUT) from exc
        except httpx.HTTPError as exc:
            raise ProxyError(
                0,
                "Network request failed. Check your internet connection.",
                ErrorCode.NETWORK_ERROR,
            ) from exc

        if response.status_code != 200:
            code, message = _error_fields(response)
            raise ProxyError(response.status_code, message, code)

        try:
            return ProxyResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProxyError(
                response.status_code, "Invalid response from proxy", ErrorCode.PARSE_ERROR
            ) from exc
