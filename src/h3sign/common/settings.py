"""Configuration management using pydantic-settings."""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``H3_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="H3_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Client
    api_endpoint: str = Field(
        default="http://127.0.0.1:4001",
        description="H3 Cloud API endpoint",
    )
    key_id: str | None = Field(
        default=None,
        description="API key id sent in X-H3-Key-Id",
    )
    secret_key: SecretStr | None = Field(
        default=None,
        description="API secret key for HMAC signing",
    )
    timeout: float = Field(
        default=30.0,
        description="Per-attempt request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        description="Retries after the first attempt on transient failures",
    )

    # Verifying server
    server_host: str = Field(
        default="127.0.0.1",
        description="Host for the verifying server",
    )
    server_port: int = Field(
        default=4001,
        description="Port for the verifying server",
    )
    server_keys: dict[str, SecretStr] = Field(
        default_factory=dict,
        description="Mapping of key id to secret key (JSON)",
    )
    auth_exempt_paths: tuple[str, ...] = Field(
        default=("/health", "/metrics"),
        description="Paths exempt from HMAC verification",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level",
    )
    log_json: bool = Field(
        default=False,
        description="Emit JSON log lines",
    )

    # Tracing
    tracing_enabled: bool = Field(
        default=False,
        description="Enable OpenTelemetry tracing",
    )
    tracing_otlp_endpoint: str | None = Field(
        default=None,
        description="OTLP collector endpoint (e.g. http://localhost:4317)",
    )
    tracing_console: bool = Field(
        default=False,
        description="Emit traces to console (debug only)",
    )
    tracing_service_name: str | None = Field(
        default=None,
        description="Service name for tracing (defaults to service-specific)",
    )

    @property
    def server_secrets(self) -> dict[str, str]:
        """Plain key id to secret mapping for the verifier key store."""
        return {key_id: secret.get_secret_value() for key_id, secret in self.server_keys.items()}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
