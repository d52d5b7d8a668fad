"""
Shared configuration management for the GitHub profile proxy.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PROXY_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, validation_alias=AliasChoices("port", "PROXY_PORT", "PORT"))

    # Upstream
    github_api_url: str = "https://api.github.com"
    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("github_token", "PROXY_GITHUB_TOKEN", "GITHUB_TOKEN"),
    )
    user_agent: str = "GitHub-Profile-Shop"
    upstream_timeout_seconds: float = 10.0

    # Cache
    cache_ttl_seconds: int = 600          # 10 minutes
    cache_check_period_seconds: int = 120  # sweep expired entries every 2 minutes

    # Inbound rate limiting
    rate_limit_window_seconds: int = 900  # 15 minutes
    rate_limit_max: int = 100
    strict_rate_limit_max: int = 30
    rate_limit_redis_url: Optional[str] = None

    cors_origins: List[str] = ["*"]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "github-proxy"


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
