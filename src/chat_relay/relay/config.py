"""Relay configuration with environment variable loading.

Pydantic-based configuration built once at process start and passed
explicitly into the application factory and the relay engine.
Supports OpenAI and any OpenAI-compatible gateway via a custom base URL.
"""

import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chat_relay.relay.errors import ConfigurationError


def _first_env(*names: str) -> str | None:
    """Return the first of ``names`` set to a non-blank value."""
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str) -> float | None:
    value = os.getenv(name, "").strip()
    return float(value) if value else None


class RelayConfig(BaseModel):
    """Configuration for the streaming completion relay.

    Attributes:
        api_key: Credential for the upstream provider. May be blank; a blank
            key is reported on the first chat request, not at load time.
        base_url: Provider base URL (OpenAI-compatible API root).
        default_model: Model used when the client requests none.
        fallback_model: Model substituted for blocked identifiers.
        blocked_model_prefixes: Vendor prefixes the provider cannot serve.
        temperature: Sampling temperature sent upstream.
        max_tokens: Maximum tokens in the generated response.
        connect_timeout: Seconds allowed to establish the upstream connection.
        read_timeout: Seconds allowed between upstream reads (None waits forever).
        stream_protocol: Wire framing for the client stream.
        strict_startup: Fail application startup when the credential is missing.
        cors_origins: Allowed CORS origins.
        host: Bind address.
        port: Bind port.
        log_level: Root logging level.
    """

    model_config = ConfigDict(validate_default=True)

    api_key: str = Field(
        default_factory=lambda: _first_env("AI_GATEWAY_API_KEY", "LLM_API_KEY", "OPENAI_API_KEY") or "",
        description="API key for the upstream provider",
    )
    base_url: str = Field(
        default_factory=lambda: _first_env("AI_GATEWAY_BASE_URL", "LLM_BASE_URL")
        or "https://api.openai.com/v1",
        description="Provider API base URL",
    )
    default_model: str = Field(
        default_factory=lambda: _first_env("AI_MODEL") or "gpt-4",
        description="Model used when none is requested",
    )
    fallback_model: str = Field(
        default_factory=lambda: _first_env("AI_FALLBACK_MODEL") or "gpt-4o-mini",
        description="Model substituted for unsupported identifiers",
    )
    blocked_model_prefixes: tuple[str, ...] = Field(
        default_factory=lambda: os.getenv("AI_BLOCKED_MODEL_PREFIXES", "google/"),
        description="Vendor prefixes rejected by the provider",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for response generation",
    )
    max_tokens: int = Field(
        default=2000,
        ge=1,
        le=128000,
        description="Maximum tokens in generated response",
    )
    connect_timeout: float = Field(
        default_factory=lambda: _env_float("UPSTREAM_CONNECT_TIMEOUT") or 10.0,
        gt=0.0,
    )
    read_timeout: float | None = Field(
        default_factory=lambda: _env_float("UPSTREAM_READ_TIMEOUT"),
        description="No stream timeout unless set",
    )
    stream_protocol: Literal["sse", "data"] = Field(
        default_factory=lambda: os.getenv("RELAY_STREAM_PROTOCOL", "sse").strip().lower(),
    )
    strict_startup: bool = Field(default_factory=lambda: _env_flag("RELAY_STRICT_CONFIG"))
    cors_origins: tuple[str, ...] = Field(
        default_factory=lambda: os.getenv("CORS_ORIGINS", "*"),
    )
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "3001")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    @field_validator("api_key")
    @classmethod
    def strip_api_key(cls, v: str) -> str:
        """Strip whitespace from the API key; blank keys stay blank."""
        return v.strip()

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended."""
        return v.strip().rstrip("/")

    @field_validator("blocked_model_prefixes", "cors_origins", mode="before")
    @classmethod
    def split_comma_list(cls, v: object) -> object:
        """Accept comma-separated strings as well as sequences."""
        if isinstance(v, str):
            return tuple(item.strip() for item in v.split(",") if item.strip())
        return v

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def require_api_key(self) -> str:
        """Return the upstream credential.

        Raises:
            ConfigurationError: If no API key is configured.
        """
        if not self.api_key:
            raise ConfigurationError(
                "AI_GATEWAY_API_KEY not configured. Set AI_GATEWAY_API_KEY or OPENAI_API_KEY in .env"
            )
        return self.api_key


def get_relay_config() -> RelayConfig:
    """Create relay configuration from environment.

    Returns:
        Configured RelayConfig instance.
    """
    return RelayConfig()
