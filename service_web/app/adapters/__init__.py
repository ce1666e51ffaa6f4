"""
Adapters package for the Web frontend service.

HTTP client wrappers for internal dependencies. Adapters own their base URL,
request shapes and resilience policy, and map failures to shared errors.
"""

from .weather_api_client import ForecastView, WeatherApiClient

__all__ = ["ForecastView", "WeatherApiClient"]
