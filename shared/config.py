"""
Shared configuration management for the Storefront services.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Admin access
    admin_token: str = Field(default="dev-admin-token")

    # API response cache
    api_cache_enabled: bool = Field(default=True)
    api_cache_default_ttl: int = Field(default=300, ge=1)
    api_cache_max_entries: Optional[int] = Field(default=None, ge=1)

    # HTTP Cache-Control headers
    cache_control_enabled: bool = Field(default=True)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
