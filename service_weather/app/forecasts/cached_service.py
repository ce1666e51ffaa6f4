"""
Cached weather forecasts.
"""

from datetime import timedelta
from typing import Callable, List, Optional

from shared.cache import ResilientCacheClient
from shared.cache_aside import CacheAsideService, build_cache_key
from shared.metrics import ApplicationMetrics
from shared.tracing import trace_operation

from .models import WeatherForecast, generate_forecasts

CACHE_NAMESPACE = "api:weather"
CACHE_ENTITY = "forecast"
METRICS_ENTITY = "weather"
DEFAULT_TTL = timedelta(minutes=5)


class CachedWeatherService:
    """Serves forecasts through the cache-aside read path.

    Each requested count is cached under its own key
    (``api:weather:forecast:{count}``) for ``ttl``.
    """

    def __init__(self,
                 cache: ResilientCacheClient,
                 *,
                 metrics: Optional[ApplicationMetrics] = None,
                 ttl: timedelta = DEFAULT_TTL,
                 generator: Callable[[int], List[WeatherForecast]] = generate_forecasts):
        self.ttl = ttl
        self.generator = generator
        self.cache_aside: CacheAsideService[WeatherForecast] = CacheAsideService(
            cache,
            WeatherForecast,
            entity=METRICS_ENTITY,
            metrics=metrics,
        )

    @staticmethod
    def cache_key(count: int) -> str:
        return build_cache_key(CACHE_NAMESPACE, CACHE_ENTITY, count)

    async def get_weather_forecast(self, max_items: int = 10) -> List[WeatherForecast]:
        with trace_operation("weather.get_forecast", max_items=max_items):
            return await self.cache_aside.get_or_generate(
                self.cache_key(max_items),
                max_items,
                lambda: self.generator(max_items),
                self.ttl,
            )
