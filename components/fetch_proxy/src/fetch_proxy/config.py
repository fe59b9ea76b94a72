"""Fetch proxy configuration (Pydantic Settings) and the immutable policy values derived from it."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ValidationEnvironment(BaseModel):
    """Which URL schemes the validator accepts."""

    model_config = ConfigDict(frozen=True)

    is_production: bool = Field(default=True)
    allow_http_in_dev: bool = Field(default=False)

    @property
    def allowed_schemes(self) -> frozenset[str]:
        if not self.is_production and self.allow_http_in_dev:
            return frozenset({"https", "http"})
        return frozenset({"https"})


class FetchPolicy(BaseModel):
    """Per-request limits for the redirect-bounded fetcher."""

    model_config = ConfigDict(frozen=True)

    timeout_ms: int = Field(default=10_000, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    max_bytes: int = Field(default=1_048_576, gt=0)
    user_agent: str = Field(default="MetaPeek/1.0 (+https://metapeek.icjia.app)")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class ProxyConfig(BaseSettings):
    model_config = SettingsConfigDict(  # pyrefly: ignore[missing-override-decorator]
        env_prefix="FETCH_PROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    environment: Literal["production", "development"] = Field(default="production")
    allow_http_in_dev: bool = Field(default=True)

    # HTTP
    request_timeout_ms: int = Field(default=10_000, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    max_response_bytes: int = Field(default=1_048_576, gt=0)
    user_agent: str = Field(default="MetaPeek/1.0 (+https://metapeek.icjia.app)")

    # Validation
    max_url_length: int = Field(default=2048, gt=0)
    dns_timeout_seconds: float = Field(default=5.0, gt=0)

    # Response shaping
    body_snippet_length: int = Field(default=1024, ge=0)

    # Optional bearer gate; unset means the endpoint is open
    api_key: SecretStr | None = Field(default=None)

    # HTTP surface
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["https://metapeek.icjia.app", "http://localhost:3000"]
    )
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def validation_environment(self) -> ValidationEnvironment:
        return ValidationEnvironment(
            is_production=self.is_production,
            allow_http_in_dev=self.allow_http_in_dev,
        )

    @property
    def fetch_policy(self) -> FetchPolicy:
        return FetchPolicy(
            timeout_ms=self.request_timeout_ms,
            max_redirects=self.max_redirects,
            max_bytes=self.max_response_bytes,
            user_agent=self.user_agent,
        )
