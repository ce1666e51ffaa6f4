"""
Weather API service for the Weather Platform.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import Query
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.cache import ResilientCacheClient, create_cache_client
from shared.config import ServiceConfig, get_config
from shared.feature_flags import ConfigHandle, FeatureFlag, initialize_feature_flags

from .forecasts.cached_service import CachedWeatherService

SERVICE_NAME = "weather"
DEFAULT_PORT = 8020


class WeatherService(BaseService):
    """Weather API service implementation."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 *,
                 cache: Optional[ResilientCacheClient] = None,
                 feature_flags: Optional[ConfigHandle] = None):
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config)

        self.cache = cache or create_cache_client(
            self.config.redis_url,
            metrics=self.metrics,
            operation_timeout=self.config.cache_operation_timeout,
        )
        # Local defaults until start() reaches the configuration service.
        self.feature_flags = feature_flags or ConfigHandle(self.config.feature_flags, metrics=self.metrics)
        self._owns_feature_flags = feature_flags is None
        self.forecasts = CachedWeatherService(
            self.cache,
            metrics=self.metrics,
            ttl=timedelta(seconds=self.config.forecast_cache_ttl_seconds),
        )

        self._setup_weather_routes()

    def _setup_weather_routes(self):
        """Set up weather-specific routes."""

        @self.app.get("/")
        async def root():
            return "API service is running. Navigate to /weatherforecast to see sample data."

        @self.app.get("/weatherforecast")
        async def get_weather_forecast(count: int = Query(10, description="Number of days to forecast")):
            """Forecasts for the next ``count`` days, served through the cache."""
            enabled = self.feature_flags.is_enabled(FeatureFlag.WEATHER_FORECAST)
            self.metrics.record_weather_api_call("weatherforecast", enabled)
            if not enabled:
                return JSONResponse(
                    status_code=503,
                    content={"error": "Weather forecast feature is currently disabled"}
                )

            forecasts = await self.forecasts.get_weather_forecast(count)
            return [forecast.model_dump(mode="json", by_alias=True) for forecast in forecasts]

        @self.app.get("/health/detailed")
        async def detailed_health():
            """Version and feature details when ``DetailedHealth`` is on."""
            if not self.feature_flags.is_enabled(FeatureFlag.DETAILED_HEALTH):
                return {"status": "healthy"}

            return {
                "status": "healthy",
                "version": self.config.app_version,
                "commitSha": self.commit_sha,
                "service": SERVICE_NAME,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "uptime": self._get_uptime(),
                "cache": {"backend": self.cache.backend_name, **self.cache.stats()},
                "features": {
                    "detailedHealth": True,
                    "weatherForecast": self.feature_flags.is_enabled(FeatureFlag.WEATHER_FORECAST),
                },
            }

    async def _check_dependencies(self) -> Dict[str, str]:
        """The cache reports 'degraded' rather than failing readiness."""
        return {
            "cache": await self.cache.health_check(),
            "feature_flags": "remote" if self.feature_flags.remote_backed else "local",
        }

    async def start(self):
        """Probe the cache and connect to the configuration service. Never fails startup."""
        await self.cache.warmup()
        if self._owns_feature_flags:
            self.feature_flags = await initialize_feature_flags(
                self.config.app_config_endpoint,
                self.config.feature_flags,
                environment=self.config.env,
                refresh_interval=self.config.feature_flag_refresh_seconds,
                timeout=self.config.feature_flag_fetch_timeout,
                metrics=self.metrics,
            )
        self.logger.info("Weather service started", cache_backend=self.cache.backend_name)

    async def stop(self):
        await self.feature_flags.aclose()
        await self.cache.aclose(timeout=self.config.cache_shutdown_timeout)
        self.logger.info("Weather service stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create weather service application."""
    service = WeatherService(config or get_config(SERVICE_NAME, DEFAULT_PORT))
    return service.app


if __name__ == "__main__":
    WeatherService().run()
