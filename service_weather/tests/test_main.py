"""
Unit tests for the Weather API service.
"""

import pytest
from fastapi.testclient import TestClient

from service_weather.app.main import WeatherService, create_app
from shared.cache import ResilientCacheClient
from shared.config import get_config
from shared.feature_flags import ConfigHandle
from shared.test_helpers import CountingCacheBackend, FailingCacheBackend


class TestWeatherService:
    """Test cases for WeatherService."""

    @pytest.fixture
    def config(self):
        return get_config("weather", 8020, app_version="2.0.0", commit_sha="deadbee")

    @pytest.fixture
    def backend(self):
        return CountingCacheBackend()

    def make_client(self, config, backend, flags=None):
        service = WeatherService(
            config,
            cache=ResilientCacheClient(backend),
            feature_flags=ConfigHandle(flags if flags is not None else {"WeatherForecast": True}),
        )
        return service, TestClient(service.app)

    def test_root_endpoint(self, config, backend):
        _, client = self.make_client(config, backend)

        with client:
            response = client.get("/")

        assert response.status_code == 200
        assert "weatherforecast" in response.json()

    def test_weatherforecast_default_count(self, config, backend):
        _, client = self.make_client(config, backend)

        with client:
            response = client.get("/weatherforecast")

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 10
        assert set(data[0]) == {"date", "temperatureC", "humidity", "summary", "temperatureF"}
        assert backend.set_calls[0][0] == "api:weather:forecast:10"

    def test_weatherforecast_is_cached_per_count(self, config, backend):
        _, client = self.make_client(config, backend)

        with client:
            first = client.get("/weatherforecast", params={"count": 5}).json()
            second = client.get("/weatherforecast", params={"count": 5}).json()

        assert first == second
        assert len(backend.set_calls) == 1

    def test_weatherforecast_disabled_by_flag(self, config, backend):
        service, client = self.make_client(config, backend, {"WeatherForecast": False})

        with client:
            response = client.get("/weatherforecast")

        assert response.status_code == 503
        assert response.json() == {"error": "Weather forecast feature is currently disabled"}
        assert backend.get_calls == []
        assert service.metrics.registry.get_sample_value(
            "weather_api_calls_total", {"endpoint": "weatherforecast", "feature_enabled": "false"}
        ) == 1

    def test_weatherforecast_negative_count(self, config, backend):
        _, client = self.make_client(config, backend)

        with client:
            response = client.get("/weatherforecast", params={"count": -1})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_weatherforecast_zero_count(self, config, backend):
        _, client = self.make_client(config, backend)

        with client:
            response = client.get("/weatherforecast", params={"count": 0})

        assert response.status_code == 200
        assert response.json() == []

    def test_weatherforecast_with_cache_down(self, config):
        """A dead cache slows nothing down enough to fail requests."""
        _, client = self.make_client(config, FailingCacheBackend())

        with client:
            response = client.get("/weatherforecast", params={"count": 3})
            health = client.get("/health")

        assert response.status_code == 200
        assert len(response.json()) == 3
        assert health.status_code == 200
        assert health.json()["dependencies"]["cache"] == "degraded"

    def test_detailed_health_off_by_default(self, config, backend):
        _, client = self.make_client(config, backend)

        with client:
            response = client.get("/health/detailed")

        assert response.json() == {"status": "healthy"}

    def test_detailed_health_when_enabled(self, config, backend):
        _, client = self.make_client(config, backend, {"DetailedHealth": True})

        with client:
            client.get("/weatherforecast", params={"count": 2})
            response = client.get("/health/detailed")

        data = response.json()
        assert data["version"] == "2.0.0"
        assert data["commitSha"] == "deadbee"
        assert data["cache"]["backend"] == "memory"
        assert data["cache"]["writes"] == 1
        assert data["features"] == {"detailedHealth": True, "weatherForecast": True}

    def test_health_reports_local_flags(self, config, backend):
        _, client = self.make_client(config, backend)

        with client:
            response = client.get("/health")

        assert response.json()["dependencies"] == {"cache": "ok", "feature_flags": "local"}

    def test_create_app_runs_offline(self, monkeypatch):
        """No cache and no config service configured: the app still serves forecasts."""
        monkeypatch.delenv("WEATHER_REDIS_URL", raising=False)
        monkeypatch.delenv("WEATHER_APP_CONFIG_ENDPOINT", raising=False)

        with TestClient(create_app()) as client:
            response = client.get("/weatherforecast", params={"count": 2})

        assert response.status_code == 200
        assert len(response.json()) == 2
