"""
Unit tests for the shared service base and configuration.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError as PydanticValidationError

from shared.base_service import BaseService
from shared.config import get_config
from shared.errors import ExternalServiceError, ValidationError


class SampleService(BaseService):
    """Minimal service exercising the shared routes."""

    def __init__(self, config=None):
        super().__init__("sample", 8099, config)
        self.started = False
        self.stopped = False

        @self.app.get("/fail/{kind}")
        async def fail(kind: str):
            if kind == "validation":
                raise ValidationError("count must be positive", details={"count": -1})
            if kind == "external":
                raise ExternalServiceError("weather_api", "boom")
            raise RuntimeError("unexpected")

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


class TestBaseService:
    """Test cases for BaseService."""

    @pytest.fixture
    def service(self):
        return SampleService(get_config("sample", 8099, app_version="1.2.3", commit_sha="abc1234"))

    @pytest.fixture
    def client(self, service):
        with TestClient(service.app, raise_server_exceptions=False) as client:
            yield client

    def test_lifespan_runs_start_and_stop(self, service):
        with TestClient(service.app):
            assert service.started is True
        assert service.stopped is True

    def test_health_endpoint(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "sample"
        assert data["status"] == "ok"
        assert data["dependencies"] == {}

    def test_health_endpoint_reports_dependency_failure(self, client):
        with patch.object(SampleService, "_check_dependencies", new_callable=AsyncMock) as mock_check:
            mock_check.side_effect = RuntimeError("dependency check crashed")

            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "error"

    def test_alive_endpoint(self, client):
        response = client.get("/alive")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_version_endpoint(self, client):
        response = client.get("/version")

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "1.2.3"
        assert data["commitSha"] == "abc1234"
        assert data["service"] == "sample"
        assert data["environment"] == "development"
        assert "timestamp" in data

    def test_commit_sha_falls_back_to_github_sha(self, monkeypatch):
        monkeypatch.setenv("GITHUB_SHA", "0123456789abcdef")
        service = SampleService(get_config("sample", 8099))

        assert service.commit_sha == "0123456"

    def test_metrics_endpoint(self, client):
        client.get("/alive")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "service_info" in response.text
        assert 'service="sample"' in response.text

    def test_platform_exception_maps_to_status(self, client):
        response = client.get("/fail/validation")

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"] == {"count": -1}

    def test_external_service_error_maps_to_bad_gateway(self, client):
        response = client.get("/fail/external")

        assert response.status_code == 502
        assert response.json()["code"] == "EXTERNAL_SERVICE_ERROR"

    def test_unhandled_exception_is_internal_error(self, client):
        response = client.get("/fail/other")

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"


class TestConfig:
    """Test cases for service configuration."""

    def test_defaults(self):
        config = get_config("weather", 8020)

        assert config.service_name == "weather"
        assert config.port == 8020
        assert config.redis_url is None
        assert config.app_config_endpoint is None
        assert config.feature_flags == {"WeatherForecast": True, "DetailedHealth": False}
        assert config.forecast_cache_ttl_seconds == 300

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("WEATHER_REDIS_URL", "redis://cache:6379/0")
        monkeypatch.setenv("WEATHER_FEATURE_FLAGS", '{"WeatherForecast": false}')
        monkeypatch.setenv("WEATHER_CIRCUIT_FAILURE_THRESHOLD", "3")

        config = get_config("weather", 8020)

        assert config.redis_url == "redis://cache:6379/0"
        assert config.feature_flags == {"WeatherForecast": False}
        assert config.circuit_failure_threshold == 3

    @pytest.mark.parametrize("ttl", [0, -30])
    def test_non_positive_forecast_ttl_is_rejected(self, ttl):
        with pytest.raises(PydanticValidationError):
            get_config("weather", 8020, forecast_cache_ttl_seconds=ttl)
