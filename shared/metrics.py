"""
Shared metrics for the Weather Platform.

Metrics live on an explicitly constructed ``CollectorRegistry`` that each
service creates and hands to its components, so tests can build isolated
instances and assert on sample values.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest

CIRCUIT_STATE_VALUES = {"closed": 0, "open": 1, "half_open": 2}


class ApplicationMetrics:
    """Prometheus metrics shared by all services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None, version: str = "1.0.0"):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics(version)

    def _setup_metrics(self, version: str):
        """Register the metric families."""
        self._metrics["service_info"] = Info(
            "service",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": version
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )
        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Cache metrics
        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Number of cache hits",
            ["entity"],
            registry=self.registry
        )
        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Number of cache misses",
            ["entity"],
            registry=self.registry
        )
        self._metrics["cache_errors_total"] = Counter(
            "cache_errors_total",
            "Cache backend failures absorbed by the cache client",
            ["operation"],
            registry=self.registry
        )

        # Remote calls
        self._metrics["weather_api_calls_total"] = Counter(
            "weather_api_calls_total",
            "Total number of weather API calls",
            ["endpoint", "feature_enabled"],
            registry=self.registry
        )
        self._metrics["api_call_duration_ms"] = Histogram(
            "api_call_duration_ms",
            "API call duration in milliseconds",
            ["endpoint", "success"],
            buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000),
            registry=self.registry
        )
        self._metrics["circuit_breaker_state"] = Gauge(
            "circuit_breaker_state",
            "Circuit breaker state (0=closed, 1=open, 2=half_open)",
            ["name"],
            registry=self.registry
        )

        # Feature flags
        self._metrics["feature_flag_refresh_total"] = Counter(
            "feature_flag_refresh_total",
            "Feature flag snapshot refreshes",
            ["status"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def render_latest(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()
        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_cache_hit(self, entity: str):
        self._metrics["cache_hits_total"].labels(entity=entity).inc()

    def record_cache_miss(self, entity: str):
        self._metrics["cache_misses_total"].labels(entity=entity).inc()

    def record_cache_error(self, operation: str):
        self._metrics["cache_errors_total"].labels(operation=operation).inc()

    def record_weather_api_call(self, endpoint: str, feature_enabled: bool):
        self._metrics["weather_api_calls_total"].labels(
            endpoint=endpoint,
            feature_enabled=str(feature_enabled).lower()
        ).inc()

    def record_api_call_duration(self, endpoint: str, duration_ms: float, success: bool):
        self._metrics["api_call_duration_ms"].labels(
            endpoint=endpoint,
            success=str(success).lower()
        ).observe(duration_ms)

    def set_circuit_state(self, name: str, state: str):
        self._metrics["circuit_breaker_state"].labels(name=name).set(CIRCUIT_STATE_VALUES.get(state, -1))

    def record_flag_refresh(self, status: str):
        self._metrics["feature_flag_refresh_total"].labels(status=status).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None,
                          version: str = "1.0.0") -> ApplicationMetrics:
    """Build the metrics for a service on its own registry."""
    return ApplicationMetrics(service_name, registry, version)
