"""
Shared service defaults for the Weather Platform.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics on an injected registry
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- retry / circuit_breaker / resilience: Resilient remote call policy
- cache / cache_aside: Degrading distributed cache and the cache-aside read path
- feature_flags: Remote feature flags with local fallback

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
