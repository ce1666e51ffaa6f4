"""
Web frontend service package for the Weather Platform.

Backs the UI with page data fetched from the Weather API. Calls to the API go
through the shared resilient caller (retry, circuit breaker, timeout); when
the API is unavailable the pages get a degraded payload instead of an error.

- app.main: FastAPI app and page-data routes.
- app.adapters: HTTP clients for internal services.
"""
