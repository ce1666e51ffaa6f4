"""
Shared configuration management for the Weather Platform.
"""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_feature_flags() -> Dict[str, bool]:
    return {"WeatherForecast": True, "DetailedHealth": False}


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden with a ``WEATHER_``-prefixed environment
    variable (``WEATHER_REDIS_URL``, ``WEATHER_APP_CONFIG_ENDPOINT`` ...).
    Missing backend endpoints are a supported state: the services start in
    offline mode and fall back to local defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEATHER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "development"
    log_level: str = "info"

    # External backends (optional)
    redis_url: Optional[str] = None
    app_config_endpoint: Optional[str] = None

    # Feature flags
    feature_flags: Dict[str, bool] = Field(default_factory=_default_feature_flags)
    feature_flag_refresh_seconds: float = 30.0
    feature_flag_fetch_timeout: float = 5.0

    # Caching
    forecast_cache_ttl_seconds: int = Field(default=300, gt=0)
    cache_operation_timeout: float = 1.0
    cache_shutdown_timeout: float = 2.0

    # Internal services
    weather_service_url: str = "http://localhost:8020"

    # Remote call resilience
    remote_max_attempts: int = 3
    remote_base_delay: float = 0.2
    remote_attempt_timeout: float = 10.0
    circuit_failure_threshold: int = 5
    circuit_recovery_timeout: float = 30.0

    # Observability
    enable_tracing: bool = False
    otel_exporter: str = "http://localhost:4317"
    enable_console_tracing: bool = False

    # Deployment tracking
    app_version: str = "unknown"
    commit_sha: Optional[str] = None


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
