"""
Feature flags sourced from a remote configuration service with local fallback.

Startup never blocks on, or fails because of, the configuration service. When
it is unreachable the process runs on local defaults; when it is reachable the
snapshot is refreshed in the background every ``refresh_interval`` seconds and
a failed refresh keeps the last known values.
"""

import asyncio
import time
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Set, Union
from urllib.parse import urlparse

import httpx

from shared.logging import get_logger
from shared.metrics import ApplicationMetrics

logger = get_logger("shared.feature_flags")


class FeatureFlag(str, Enum):
    """Flags known to the platform."""
    WEATHER_FORECAST = "WeatherForecast"
    DETAILED_HEALTH = "DetailedHealth"


DEFAULT_FLAG_VALUES: Mapping[str, bool] = MappingProxyType({
    FeatureFlag.WEATHER_FORECAST.value: True,
    FeatureFlag.DETAILED_HEALTH.value: False,
})


class FeatureFlagSourceError(Exception):
    """Snapshot fetch failed; ``category`` says why."""

    def __init__(self, category: str, message: str):
        super().__init__(message)
        self.category = category


class FeatureFlagSource(Protocol):
    async def fetch(self) -> Dict[str, bool]: ...

    async def close(self) -> None: ...


class HttpFeatureFlagSource:
    """Pull-based snapshot client for the configuration service.

    ``GET {endpoint}/feature-flags?label={environment}`` returns
    ``{"items": [{"name": ..., "label": ..., "enabled": ...}]}``. Entries
    labelled with the environment win over unlabelled ones; other labels are
    ignored.
    """

    def __init__(self, endpoint: str, environment: str, *, timeout: float = 5.0,
                 client: Optional[httpx.AsyncClient] = None):
        parsed = urlparse(endpoint or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise FeatureFlagSourceError("invalid_endpoint", f"Malformed configuration endpoint: {endpoint!r}")

        self.endpoint = endpoint.rstrip("/")
        self.environment = environment
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch(self) -> Dict[str, bool]:
        try:
            response = await self._client.get(
                f"{self.endpoint}/feature-flags",
                params={"label": self.environment}
            )
        except httpx.TimeoutException as exc:
            raise FeatureFlagSourceError("timeout", str(exc) or "timed out") from exc
        except httpx.TransportError as exc:
            raise FeatureFlagSourceError("network", str(exc) or type(exc).__name__) from exc

        if response.status_code in (401, 403):
            raise FeatureFlagSourceError("authentication", f"Configuration service returned {response.status_code}")
        if response.status_code != 200:
            raise FeatureFlagSourceError("unexpected", f"Configuration service returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise FeatureFlagSourceError("invalid_payload", "Configuration snapshot is not JSON") from exc

        return self._parse_snapshot(payload)

    def _parse_snapshot(self, payload: Any) -> Dict[str, bool]:
        items = payload.get("items") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise FeatureFlagSourceError("invalid_payload", "Configuration snapshot missing 'items' array")

        unlabelled: Dict[str, bool] = {}
        labelled: Dict[str, bool] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            name = item.get("name")
            enabled = item.get("enabled")
            if not isinstance(name, str) or not isinstance(enabled, bool):
                continue
            label = item.get("label")
            if label in (None, ""):
                unlabelled[name] = enabled
            elif label == self.environment:
                labelled[name] = enabled

        return {**unlabelled, **labelled}

    async def close(self) -> None:
        await self._client.aclose()


class ConfigHandle:
    """Read side of the feature flag state.

    ``is_enabled`` is synchronous and never raises. The remote snapshot is
    replaced wholesale on refresh, so readers never take a lock.
    """

    def __init__(self,
                 local_defaults: Optional[Mapping[str, bool]] = None,
                 *,
                 source: Optional[FeatureFlagSource] = None,
                 snapshot: Optional[Mapping[str, bool]] = None,
                 refresh_interval: float = 30.0,
                 metrics: Optional[ApplicationMetrics] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._local: Mapping[str, bool] = MappingProxyType(dict(local_defaults or {}))
        self._source = source
        self._remote: Mapping[str, bool] = MappingProxyType(dict(snapshot or {}))
        self.refresh_interval = refresh_interval
        self.metrics = metrics
        self._clock = clock
        self._last_refresh = clock()
        self._refresh_task: Optional[asyncio.Task] = None
        self._warned_unknown: Set[str] = set()

    @property
    def remote_backed(self) -> bool:
        return self._source is not None

    def is_enabled(self, flag: Union[FeatureFlag, str]) -> bool:
        """Resolve a flag: remote snapshot, then local defaults, then the default table, then False."""
        name = flag.value if isinstance(flag, FeatureFlag) else str(flag)
        self._maybe_schedule_refresh()

        remote = self._remote
        if name in remote:
            return remote[name]
        if name in self._local:
            return self._local[name]
        if name in DEFAULT_FLAG_VALUES:
            return DEFAULT_FLAG_VALUES[name]

        if name not in self._warned_unknown:
            self._warned_unknown.add(name)
            logger.warning("Unknown feature flag, defaulting to disabled", flag=name)
        return False

    def snapshot(self) -> Dict[str, bool]:
        """Effective values for every flag this handle knows about."""
        names = set(DEFAULT_FLAG_VALUES) | set(self._local) | set(self._remote)
        return {name: self.is_enabled(name) for name in sorted(names)}

    def _maybe_schedule_refresh(self):
        if self._source is None:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        if (self._clock() - self._last_refresh) < self.refresh_interval:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._refresh_task = loop.create_task(self.refresh())

    async def refresh(self) -> bool:
        """Fetch a new snapshot. Failures keep the last known values."""
        if self._source is None:
            return False

        self._last_refresh = self._clock()
        try:
            values = await self._source.fetch()
        except Exception as exc:
            logger.warning(
                "Feature flag refresh failed, keeping last known values",
                category=getattr(exc, "category", "unexpected"),
                error=str(exc)
            )
            if self.metrics:
                self.metrics.record_flag_refresh("error")
            return False

        self._remote = MappingProxyType(dict(values))
        if self.metrics:
            self.metrics.record_flag_refresh("ok")
        logger.debug("Feature flags refreshed", flags=len(values))
        return True

    async def aclose(self) -> None:
        """Cancel any in-flight refresh and release the source."""
        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._source is not None:
            try:
                await self._source.close()
            except Exception as exc:
                logger.debug("Error closing feature flag source", error=str(exc))


async def initialize_feature_flags(remote_endpoint: Optional[str],
                                   local_defaults: Optional[Mapping[str, bool]] = None,
                                   *,
                                   environment: str = "development",
                                   refresh_interval: float = 30.0,
                                   timeout: float = 5.0,
                                   source: Optional[FeatureFlagSource] = None,
                                   metrics: Optional[ApplicationMetrics] = None) -> ConfigHandle:
    """Connect to the configuration service, or fall back to local defaults.

    Never raises. A failed connection produces a single warning naming the
    failure category and a handle backed by ``local_defaults`` only.
    """
    if source is None and not remote_endpoint:
        logger.info("Configuration service not configured, using local feature flags (offline mode)")
        return ConfigHandle(local_defaults, refresh_interval=refresh_interval, metrics=metrics)

    try:
        if source is None:
            source = HttpFeatureFlagSource(remote_endpoint, environment, timeout=timeout)
        snapshot = await source.fetch()
    except Exception as exc:
        logger.warning(
            "Could not connect to configuration service, falling back to local feature flags",
            endpoint=remote_endpoint,
            category=getattr(exc, "category", "unexpected"),
            error=str(exc)
        )
        if source is not None:
            try:
                await source.close()
            except Exception as close_exc:
                logger.debug("Error closing feature flag source", error=str(close_exc))
        return ConfigHandle(local_defaults, refresh_interval=refresh_interval, metrics=metrics)

    logger.info("Feature flags loaded from configuration service", endpoint=remote_endpoint, flags=len(snapshot))
    return ConfigHandle(
        local_defaults,
        source=source,
        snapshot=snapshot,
        refresh_interval=refresh_interval,
        metrics=metrics,
    )
