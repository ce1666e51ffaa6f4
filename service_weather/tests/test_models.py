"""
Unit tests for forecast records and generation.
"""

import random
from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from service_weather.app.forecasts.models import MAX_FORECAST_DAYS, SUMMARIES, WeatherForecast, generate_forecasts
from shared.errors import ValidationError


class TestWeatherForecast:
    """Test cases for WeatherForecast."""

    @pytest.mark.parametrize("celsius, fahrenheit", [
        (20, 67),
        (0, 32),
        (-20, -3),
        (54, 129),
    ])
    def test_temperature_f_is_derived(self, celsius, fahrenheit):
        forecast = WeatherForecast(date=date(2025, 1, 1), temperature_c=celsius, humidity=50)

        assert forecast.temperature_f == fahrenheit

    def test_serializes_with_camel_case_names(self):
        forecast = WeatherForecast(date=date(2025, 1, 2), temperature_c=20, humidity=40, summary="Mild")

        assert forecast.model_dump(mode="json", by_alias=True) == {
            "date": "2025-01-02",
            "temperatureC": 20,
            "humidity": 40,
            "summary": "Mild",
            "temperatureF": 67,
        }

    def test_round_trip_ignores_derived_field(self):
        forecast = WeatherForecast(date=date(2025, 1, 2), temperature_c=20, humidity=40, summary=None)

        restored = WeatherForecast.model_validate_json(forecast.model_dump_json(by_alias=True))

        assert restored == forecast
        assert restored.temperature_f == 67

    @pytest.mark.parametrize("humidity", [-1, 101])
    def test_humidity_bounds(self, humidity):
        with pytest.raises(PydanticValidationError):
            WeatherForecast(date=date(2025, 1, 1), temperature_c=10, humidity=humidity)


class TestGenerateForecasts:
    """Test cases for generate_forecasts."""

    def test_generates_consecutive_days_from_tomorrow(self):
        forecasts = generate_forecasts(5, rng=random.Random(7), today=date(2025, 3, 1))

        assert [f.date for f in forecasts] == [date(2025, 3, d) for d in range(2, 7)]

    def test_values_are_within_ranges(self):
        for forecast in generate_forecasts(MAX_FORECAST_DAYS, rng=random.Random(1)):
            assert -20 <= forecast.temperature_c < 55
            assert 20 <= forecast.humidity < 95
            assert forecast.summary in SUMMARIES

    def test_zero_count_is_empty(self):
        assert generate_forecasts(0) == []

    @pytest.mark.parametrize("count", [-1, MAX_FORECAST_DAYS + 1])
    def test_out_of_range_count_is_rejected(self, count):
        with pytest.raises(ValidationError):
            generate_forecasts(count)
