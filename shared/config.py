"""
Shared configuration management for the sign-in relying party.
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias="ACCESS_ENV")
    log_level: str = Field(default="info", validation_alias="ACCESS_LOG_LEVEL")

    # Listener
    host: str = "0.0.0.0"
    port: int = 8080

    # Authorization server
    auth_host: str = "https://auth.eks.codebrick.io"
    client_id: str = "client-1"
    client_secret: str = "client-1-secret"
    redirect_uri: Optional[str] = None
    scope: str = "openid profile"

    # The issuer is configured separately from auth_host; the two differ
    # for the default deployment.
    id_token_issuer: str = "https://accounts.eks.codebrick.io"
    id_token_leeway_seconds: int = 0

    # Outbound calls and caches
    http_timeout_seconds: float = 10.0
    jwks_cache_ttl_seconds: int = 3600
    jwks_min_refresh_interval_seconds: int = 30
    state_ttl_seconds: int = 600

    @model_validator(mode="after")
    def _derive_defaults(self) -> "BaseConfig":
        self.auth_host = self.auth_host.rstrip("/")
        if not self.redirect_uri:
            self.redirect_uri = f"http://localhost:{self.port}/oauth_callback"
        return self

    @property
    def authorize_url(self) -> str:
        return f"{self.auth_host}/auth"

    @property
    def token_url(self) -> str:
        return f"{self.auth_host}/oauth/token"

    @property
    def jwks_url(self) -> str:
        return f"{self.auth_host}/.well-known/jwks.json"

    @property
    def signout_url(self) -> str:
        return f"{self.auth_host}/signout"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
