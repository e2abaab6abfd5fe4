"""Configuration management using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOKUPAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Gateway
    doku_env: Literal["sandbox", "production"] = Field(
        default="sandbox",
        description="DOKU environment selecting the API host",
    )
    doku_base_url: str | None = Field(
        default=None,
        description="Override for the DOKU API host (defaults to the host for doku_env)",
    )
    client_id: str = Field(
        default="",
        description="DOKU merchant client identifier",
    )
    secret_key: str = Field(
        default="",
        repr=False,
        description="DOKU shared secret used for request and notification signatures",
    )
    default_currency: str = Field(
        default="IDR",
        description="Currency applied when a payment request omits one",
    )
    notification_path: str = Field(
        default="/payments/doku/notify",
        description="Path of the notification endpoint, signed as Request-Target",
    )
    http_timeout: float | None = Field(
        default=30.0,
        description="Total timeout for gateway HTTP requests in seconds (None = no limit)",
    )

    # Service
    host: str = Field(
        default="0.0.0.0",
        description="Host for the HTTP service",
    )
    port: int = Field(
        default=3000,
        description="Port for the HTTP service",
    )
    api_secret_key: str = Field(
        default="",
        repr=False,
        description="API key required on merchant-facing routes",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public URL of this service, used to build callback URLs",
    )
    auth_exempt_paths: tuple[str, ...] = Field(
        default=("/health", "/metrics"),
        description="Paths exempt from API key authentication",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of console output",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
