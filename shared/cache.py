"""
Resilient distributed cache client.

The cache is a performance optimization, never a correctness dependency.
``ResilientCacheClient`` absorbs every backend failure: reads degrade to a
miss, writes degrade to a no-op. Only cancellation and caller-input errors
escape.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Set, Union

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from shared.errors import ValidationError
from shared.logging import get_logger
from shared.metrics import ApplicationMetrics

TTL = Union[timedelta, int, float]


class CacheStatus(Enum):
    """Outcome of a cache read."""
    HIT = "hit"
    MISS = "miss"
    BACKEND_ERROR = "backend_error"


@dataclass(frozen=True)
class CacheResult:
    """Tagged cache read result.

    Production callers treat ``MISS`` and ``BACKEND_ERROR`` the same way; the
    distinction exists so tests and diagnostics can tell them apart.
    """

    status: CacheStatus
    payload: Optional[bytes] = None
    error_category: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def hit(cls, payload: bytes) -> "CacheResult":
        return cls(CacheStatus.HIT, payload=payload)

    @classmethod
    def miss(cls) -> "CacheResult":
        return cls(CacheStatus.MISS)

    @classmethod
    def backend_error(cls, category: str, error: str) -> "CacheResult":
        return cls(CacheStatus.BACKEND_ERROR, error_category=category, error=error)

    @property
    def is_hit(self) -> bool:
        return self.status is CacheStatus.HIT


@dataclass(frozen=True)
class CacheEntry:
    """A stored payload and its absolute expiry on the backend clock."""

    key: str
    payload: bytes
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheBackend(Protocol):
    """Minimal key/bytes store with TTL."""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes, ttl_seconds: float) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisCacheBackend:
    """Redis-backed cache store."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 2.0, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.redis = client or redis.from_url(
            redis_url,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            health_check_interval=30,
        )

    async def get(self, key: str) -> Optional[bytes]:
        return await self.redis.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: float) -> None:
        # PX keeps sub-second TTLs; Redis rejects a zero expiry.
        await self.redis.set(key, value, px=max(1, int(ttl_seconds * 1000)))

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()


class InMemoryCacheBackend:
    """Process-local TTL store used when no distributed cache is configured."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry.payload

    async def set(self, key: str, value: bytes, ttl_seconds: float) -> None:
        self._entries[key] = CacheEntry(key, bytes(value), self._clock() + ttl_seconds)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def ttl_to_seconds(ttl: TTL) -> float:
    """Normalize a TTL to positive seconds; anything else is a caller error."""
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    if seconds <= 0:
        raise ValidationError("Cache TTL must be positive", details={"ttl_seconds": seconds})
    return seconds


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"Unexpected cache payload type {type(value).__name__}")


def categorize_cache_error(exc: BaseException) -> str:
    """Map a backend exception to a coarse failure category for logs."""
    if isinstance(exc, (asyncio.TimeoutError, RedisTimeoutError)):
        return "timeout"
    if isinstance(exc, (RedisConnectionError, ConnectionError, OSError)):
        return "connectivity"
    if isinstance(exc, (TypeError, ValueError, UnicodeError)):
        return "serialization"
    if isinstance(exc, RedisError):
        return "backend"
    return "unexpected"


class ResilientCacheClient:
    """Uniform get/set over a cache backend that never fails its caller."""

    def __init__(self,
                 backend: CacheBackend,
                 *,
                 metrics: Optional[ApplicationMetrics] = None,
                 operation_timeout: float = 1.0):
        self.backend = backend
        self.metrics = metrics
        self.operation_timeout = operation_timeout
        self.logger = get_logger("shared.cache")

        self._pending: Set[asyncio.Task] = set()
        self._closed = False
        self._stats = {"hits": 0, "misses": 0, "errors": 0, "writes": 0}
        self._stats_lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "redis" if isinstance(self.backend, RedisCacheBackend) else "memory"

    def _bump(self, counter: str):
        with self._stats_lock:
            self._stats[counter] += 1

    def _record_error(self, operation: str):
        self._bump("errors")
        if self.metrics:
            self.metrics.record_cache_error(operation)

    def stats(self) -> Dict[str, int]:
        """Snapshot of client-side counters."""
        with self._stats_lock:
            return dict(self._stats)

    async def get_result(self, key: str) -> CacheResult:
        """Read ``key`` and report exactly what happened."""
        try:
            raw = await asyncio.wait_for(self.backend.get(key), self.operation_timeout)
            payload = None if raw is None else _as_bytes(raw)
        except Exception as exc:
            category = categorize_cache_error(exc)
            self._record_error("get")
            self.logger.warning(
                "Cache read failed, treating as miss",
                key=key,
                category=category,
                error=str(exc) or type(exc).__name__
            )
            return CacheResult.backend_error(category, str(exc) or type(exc).__name__)

        if payload is None:
            self._bump("misses")
            return CacheResult.miss()

        self._bump("hits")
        return CacheResult.hit(payload)

    async def get(self, key: str) -> Optional[bytes]:
        """Return the cached payload, or ``None`` on a miss or backend failure."""
        result = await self.get_result(key)
        return result.payload if result.is_hit else None

    async def set(self, key: str, payload: bytes, ttl: TTL) -> bool:
        """Write ``payload`` with an absolute TTL. Returns whether the write landed."""
        ttl_seconds = ttl_to_seconds(ttl)
        if self._closed:
            self.logger.debug("Cache client closed, skipping write", key=key)
            return False

        task = asyncio.ensure_future(self._write(key, _as_bytes(payload), ttl_seconds))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # Abandoned by aclose() while this caller was not itself cancelled.
            if task.cancelled() and (current is None or current.cancelling() == 0):
                self.logger.debug("Cache write abandoned on shutdown", key=key)
                return False
            raise

    async def _write(self, key: str, payload: bytes, ttl_seconds: float) -> bool:
        try:
            await asyncio.wait_for(self.backend.set(key, payload, ttl_seconds), self.operation_timeout)
        except Exception as exc:
            self._record_error("set")
            self.logger.warning(
                "Cache write failed, continuing without cache",
                key=key,
                category=categorize_cache_error(exc),
                error=str(exc) or type(exc).__name__
            )
            return False

        self._bump("writes")
        return True

    async def warmup(self) -> bool:
        """Probe the backend once at startup. Never raises."""
        try:
            reachable = await asyncio.wait_for(self.backend.ping(), self.operation_timeout)
        except Exception as exc:
            self.logger.warning(
                "Distributed cache unreachable at startup, running without cache",
                backend=self.backend_name,
                category=categorize_cache_error(exc),
                error=str(exc) or type(exc).__name__
            )
            return False

        self.logger.info("Cache configured", backend=self.backend_name)
        return bool(reachable)

    async def health_check(self) -> str:
        """Return 'ok' or 'degraded'; the cache is never a hard dependency."""
        try:
            await asyncio.wait_for(self.backend.ping(), self.operation_timeout)
            return "ok"
        except Exception:
            return "degraded"

    async def aclose(self, timeout: float = 2.0) -> None:
        """Stop accepting writes, give pending ones ``timeout`` seconds, then abandon them."""
        self._closed = True
        pending = [task for task in self._pending if not task.done()]
        if pending:
            _, not_done = await asyncio.wait(pending, timeout=timeout)
            for task in not_done:
                task.cancel()
            if not_done:
                await asyncio.gather(*not_done, return_exceptions=True)
                self.logger.warning("Abandoned pending cache writes on shutdown", count=len(not_done))

        try:
            await self.backend.close()
        except Exception as exc:
            self.logger.warning("Error closing cache backend", error=str(exc))


def create_cache_client(redis_url: Optional[str],
                        *,
                        metrics: Optional[ApplicationMetrics] = None,
                        operation_timeout: float = 1.0) -> ResilientCacheClient:
    """Build the cache client for the configured connection string.

    No connection string, or one Redis cannot parse, selects the in-process
    store; both are supported states rather than errors.
    """
    logger = get_logger("shared.cache")
    backend: CacheBackend
    if not redis_url:
        logger.info("Distributed cache not configured, using in-memory cache")
        backend = InMemoryCacheBackend()
    else:
        try:
            backend = RedisCacheBackend(redis_url, socket_timeout=operation_timeout)
        except ValueError as exc:
            logger.warning("Invalid cache connection string, using in-memory cache", error=str(exc))
            backend = InMemoryCacheBackend()

    return ResilientCacheClient(backend, metrics=metrics, operation_timeout=operation_timeout)
