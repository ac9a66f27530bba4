"""Service settings and configuration."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_testing() -> bool:
    """Check if we're running in a test environment."""
    import sys
    return "pytest" in sys.modules


@dataclass(frozen=True)
class TlsConfig:
    """TLS material handed to the listener. Built outside the pipeline."""

    certfile: str
    keyfile: str
    password: str | None = None


class Settings(BaseSettings):
    """Service settings."""

    model_config = SettingsConfigDict(
        env_file=".env" if not _is_testing() else None,  # Don't load .env in tests
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_env: Literal["local", "staging", "prod", "test"] = Field(
        default="local", description="Application environment"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    service_name: str = Field(default="txpipe", description="Service name in log lines")

    # Listener
    http_port: int = Field(default=8080, ge=0, le=65535, description="Listener port")
    tls_certfile: str | None = Field(default=None, description="TLS certificate file")
    tls_keyfile: str | None = Field(default=None, description="TLS private key file")
    tls_keyfile_password: str | None = Field(
        default=None, description="Password for the TLS private key"
    )

    # Metrics
    metrics_enabled: bool = Field(default=True, description="Enable Prometheus metrics")
    metrics_log: bool = Field(
        default=True, description="Echo request metrics as log lines"
    )

    # Request logging
    quiet_routes: str = Field(
        default="/health/live,/metrics",
        description="Comma-separated paths whose request logs are emitted at DEBUG",
    )

    @model_validator(mode="after")
    def validate_tls_config(self) -> "Settings":
        """Validate TLS configuration."""
        if bool(self.tls_certfile) != bool(self.tls_keyfile):
            raise ValueError("TLS_CERTFILE and TLS_KEYFILE must be set together")
        return self

    @property
    def quiet_routes_list(self) -> list[str]:
        """Get quiet routes as a list."""
        return [path.strip() for path in self.quiet_routes.split(",") if path.strip()]

    def tls_config(self) -> TlsConfig | None:
        """TLS material for the listener, or None for plain HTTP."""
        if not self.tls_certfile or not self.tls_keyfile:
            return None
        return TlsConfig(
            certfile=self.tls_certfile,
            keyfile=self.tls_keyfile,
            password=self.tls_keyfile_password,
        )

    def loglevel_for_route(self) -> Callable[[str], int]:
        """Build the per-path log level policy from ``quiet_routes``."""
        quiet = frozenset(self.quiet_routes_list)

        def _loglevel(path: str) -> int:
            return logging.DEBUG if path in quiet else logging.INFO

        return _loglevel

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
