"""
Forecast domain for the Weather API Service.

Immutable forecast records, the random generator that produces them and the
cache-aside wrapper that serves them.
"""

from .models import WeatherForecast, generate_forecasts
from .cached_service import CachedWeatherService

__all__ = ["WeatherForecast", "generate_forecasts", "CachedWeatherService"]
