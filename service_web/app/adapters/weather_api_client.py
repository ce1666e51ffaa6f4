"""
Weather API client for the Web frontend.
"""

import time
from datetime import date
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from shared.errors import ExternalServiceError, PlatformException, ValidationError
from shared.logging import get_logger
from shared.metrics import ApplicationMetrics
from shared.resilience import ResiliencePolicy, ResilientCaller

SERVICE_NAME = "weather_api"
FORECAST_ENDPOINT = "weatherforecast"
MAX_FORECAST_ITEMS = 100


class ForecastView(BaseModel):
    """Forecast fields the frontend renders."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    date: date
    temperature_c: int
    temperature_f: int
    summary: Optional[str] = None


_FORECASTS = TypeAdapter(List[ForecastView])


def is_transient_status(status_code: int) -> bool:
    """Statuses worth retrying: server errors, request timeout, throttling."""
    return status_code >= 500 or status_code in (408, 429)


class WeatherApiClient:
    """Client for the Weather API, wrapped in the shared resilience policy."""

    def __init__(self,
                 weather_service_url: str,
                 *,
                 policy: Optional[ResiliencePolicy] = None,
                 metrics: Optional[ApplicationMetrics] = None,
                 client: Optional[httpx.AsyncClient] = None,
                 caller: Optional[ResilientCaller] = None):
        self.base_url = weather_service_url.rstrip("/")
        self.metrics = metrics
        self.logger = get_logger("web.weather_api_client")
        self.resilience = caller or ResilientCaller(SERVICE_NAME, policy, metrics=metrics)
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.resilience.policy.attempt_timeout,
        )

    async def aclose(self):
        await self._client.aclose()

    async def get_weather(self, max_items: int = 10) -> List[ForecastView]:
        """Fetch at most ``max_items`` forecasts.

        Raises ``ServiceUnavailableError`` when retries are exhausted or the
        circuit is open.
        """
        if max_items < 0 or max_items > MAX_FORECAST_ITEMS:
            raise ValidationError(
                f"max_items must be between 0 and {MAX_FORECAST_ITEMS}",
                details={"max_items": max_items}
            )

        started = time.perf_counter()
        success = False
        try:
            forecasts = await self.resilience.call(self._fetch_forecasts, max_items)
            success = True
            return forecasts[:max_items]
        finally:
            if self.metrics:
                self.metrics.record_api_call_duration(
                    FORECAST_ENDPOINT,
                    (time.perf_counter() - started) * 1000,
                    success
                )

    async def _fetch_forecasts(self, count: int) -> List[ForecastView]:
        """One attempt against ``GET /weatherforecast``."""
        response = await self._client.get(f"/{FORECAST_ENDPOINT}", params={"count": count})

        if is_transient_status(response.status_code):
            self.logger.warning("Weather API returned a transient error", status_code=response.status_code)
            raise ExternalServiceError(
                service=SERVICE_NAME,
                message=f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code}
            )

        if response.status_code == 400:
            raise ValidationError(
                "Weather API rejected the forecast request",
                details={"status_code": response.status_code, "body": response.text}
            )

        if response.status_code != 200:
            raise PlatformException(
                "WEATHER_API_ERROR",
                f"Weather API rejected the request with status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text},
                status_code=502,
            )

        try:
            return _FORECASTS.validate_json(response.content)
        except PydanticValidationError as exc:
            raise PlatformException(
                "WEATHER_API_ERROR",
                "Weather API returned an unexpected payload",
                details={"errors": exc.error_count()},
                status_code=502,
            ) from exc
