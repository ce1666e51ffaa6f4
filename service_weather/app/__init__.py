"""
Weather API Service package for the Weather Platform.

Serves randomly generated forecasts through the cache-aside read path:

- app.main: FastAPI app, routes and lifecycle wiring (cache, feature flags).
- app.forecasts: Forecast model, generator and the cached forecast service.

Guidelines:
- The distributed cache is an optimization; every route works without it.
- Feature flags gate endpoints; flag lookups never fail a request.
"""
