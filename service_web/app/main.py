"""
Web frontend service for the Weather Platform.
"""

from typing import Dict, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ServiceUnavailableError
from shared.feature_flags import ConfigHandle, FeatureFlag, initialize_feature_flags
from shared.resilience import ResiliencePolicy

from .adapters.weather_api_client import MAX_FORECAST_ITEMS, WeatherApiClient

SERVICE_NAME = "web"
DEFAULT_PORT = 8030
WEATHER_ENDPOINT = "api/weather"

DEGRADED_MESSAGE = "Weather data is temporarily unavailable. Please try again shortly."
DISABLED_MESSAGE = "Weather forecast feature is currently disabled"


class WebFrontendService(BaseService):
    """Frontend service that renders forecasts from the Weather API."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 *,
                 weather_client: Optional[WeatherApiClient] = None,
                 feature_flags: Optional[ConfigHandle] = None):
        super().__init__(SERVICE_NAME, DEFAULT_PORT, config)

        self.weather_client = weather_client or WeatherApiClient(
            self.config.weather_service_url,
            policy=ResiliencePolicy.from_config(self.config),
            metrics=self.metrics,
        )
        self.feature_flags = feature_flags or ConfigHandle(self.config.feature_flags, metrics=self.metrics)
        self._owns_feature_flags = feature_flags is None

        self._setup_web_routes()

    def _setup_web_routes(self):
        """Set up frontend routes."""

        @self.app.get("/")
        async def root():
            return "Web frontend is running. Navigate to /api/weather to see the forecast."

        @self.app.get("/api/weather")
        async def get_weather(max_items: int = Query(10, ge=0, le=MAX_FORECAST_ITEMS, description="Maximum forecasts to show")):
            """Forecasts for display. An unavailable Weather API yields a degraded payload, not an error."""
            enabled = self.feature_flags.is_enabled(FeatureFlag.WEATHER_FORECAST)
            self.metrics.record_weather_api_call(WEATHER_ENDPOINT, enabled)

            if not enabled:
                return {"forecasts": [], "degraded": False, "message": DISABLED_MESSAGE}

            try:
                forecasts = await self.weather_client.get_weather(max_items)
            except ServiceUnavailableError as e:
                self.logger.warning("Weather API unavailable, rendering degraded view", reason=e.message, details=e.details)
                return {"forecasts": [], "degraded": True, "message": DEGRADED_MESSAGE}

            return {
                "forecasts": [forecast.model_dump(mode="json", by_alias=True) for forecast in forecasts],
                "degraded": False,
            }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Circuit state of the Weather API; an open circuit is reported, not failed."""
        return {
            "weather_api": self.weather_client.resilience.circuit_breaker.state.value,
            "feature_flags": "remote" if self.feature_flags.remote_backed else "local",
        }

    async def start(self):
        if self._owns_feature_flags:
            self.feature_flags = await initialize_feature_flags(
                self.config.app_config_endpoint,
                self.config.feature_flags,
                environment=self.config.env,
                refresh_interval=self.config.feature_flag_refresh_seconds,
                timeout=self.config.feature_flag_fetch_timeout,
                metrics=self.metrics,
            )
        self.logger.info("Web frontend started", weather_service_url=self.config.weather_service_url)

    async def stop(self):
        await self.feature_flags.aclose()
        await self.weather_client.aclose()
        self.logger.info("Web frontend stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create web frontend application."""
    service = WebFrontendService(config or get_config(SERVICE_NAME, DEFAULT_PORT))
    return service.app


if __name__ == "__main__":
    WebFrontendService().run()
