"""
Unit tests for the resilient cache client.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from shared.cache import (
    CacheStatus,
    InMemoryCacheBackend,
    RedisCacheBackend,
    ResilientCacheClient,
    categorize_cache_error,
    create_cache_client,
)
from shared.errors import ValidationError
from shared.metrics import ApplicationMetrics
from shared.test_helpers import CountingCacheBackend, FailingCacheBackend, ManualClock, SlowCacheBackend


class TestInMemoryCacheBackend:
    """Test cases for the in-process store."""

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self):
        """Entries are gone once their TTL has elapsed."""
        clock = ManualClock()
        backend = InMemoryCacheBackend(clock)

        await backend.set("k", b"v", 10)
        clock.advance(9.9)
        assert await backend.get("k") == b"v"

        clock.advance(0.2)
        assert await backend.get("k") is None
        assert len(backend) == 0

    @pytest.mark.asyncio
    async def test_overwrite_replaces_value_and_ttl(self):
        clock = ManualClock()
        backend = InMemoryCacheBackend(clock)

        await backend.set("k", b"first", 5)
        clock.advance(4)
        await backend.set("k", b"second", 5)
        clock.advance(4)

        assert await backend.get("k") == b"second"


class TestRedisCacheBackend:
    """Test cases for the Redis store adapter."""

    @pytest.mark.asyncio
    async def test_set_uses_millisecond_expiry(self):
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        backend = RedisCacheBackend("redis://localhost:6379/0", client=client)

        await backend.set("k", b"v", 0.25)

        client.set.assert_awaited_once_with("k", b"v", px=250)

    @pytest.mark.asyncio
    async def test_close_releases_connection(self):
        client = MagicMock()
        client.aclose = AsyncMock()
        backend = RedisCacheBackend("redis://localhost:6379/0", client=client)

        await backend.close()

        client.aclose.assert_awaited_once()


class TestResilientCacheClient:
    """Test cases for ResilientCacheClient."""

    @pytest.fixture
    def metrics(self):
        return ApplicationMetrics("test")

    @pytest.fixture
    def backend(self):
        return CountingCacheBackend()

    @pytest.fixture
    def cache(self, backend, metrics):
        return ResilientCacheClient(backend, metrics=metrics, operation_timeout=0.5)

    @pytest.mark.asyncio
    async def test_set_then_get_returns_payload(self, cache):
        """A written payload is read back unchanged."""
        assert await cache.set("k", b"payload", timedelta(minutes=5)) is True

        assert await cache.get("k") == b"payload"
        assert cache.stats()["writes"] == 1
        assert cache.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_get_missing_key_is_miss(self, cache):
        result = await cache.get_result("absent")

        assert result.status is CacheStatus.MISS
        assert result.payload is None
        assert await cache.get("absent") is None

    @pytest.mark.asyncio
    async def test_ttl_is_passed_in_seconds(self, cache, backend):
        await cache.set("k", b"v", timedelta(minutes=5))

        assert backend.set_calls == [("k", b"v", 300.0)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -1, timedelta(0)])
    async def test_non_positive_ttl_is_rejected(self, cache, backend, ttl):
        """A non-positive TTL is a caller error, not a cache failure."""
        with pytest.raises(ValidationError):
            await cache.set("k", b"v", ttl)

        assert backend.set_calls == []

    @pytest.mark.asyncio
    async def test_failing_backend_degrades_to_miss(self, metrics):
        """Every read reports a miss and every write reports failure; nothing raises."""
        backend = FailingCacheBackend()
        cache = ResilientCacheClient(backend, metrics=metrics)

        result = await cache.get_result("k")
        assert result.status is CacheStatus.BACKEND_ERROR
        assert result.error_category == "connectivity"

        assert await cache.get("k") is None
        assert await cache.set("k", b"v", 60) is False

        assert metrics.registry.get_sample_value("cache_errors_total", {"operation": "get"}) == 2
        assert metrics.registry.get_sample_value("cache_errors_total", {"operation": "set"}) == 1
        assert cache.stats()["errors"] == 3

    @pytest.mark.asyncio
    async def test_slow_backend_times_out_as_backend_error(self):
        cache = ResilientCacheClient(SlowCacheBackend(delay=0.5), operation_timeout=0.05)

        result = await cache.get_result("k")

        assert result.status is CacheStatus.BACKEND_ERROR
        assert result.error_category == "timeout"
        assert await cache.set("k", b"v", 60) is False

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Cancelling a caller is never absorbed as a cache failure."""
        cache = ResilientCacheClient(SlowCacheBackend(delay=5), operation_timeout=10)

        task = asyncio.ensure_future(cache.get("k"))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert cache.stats()["errors"] == 0

    @pytest.mark.asyncio
    async def test_warmup_and_health_report_unreachable_backend(self):
        cache = ResilientCacheClient(FailingCacheBackend())

        assert await cache.warmup() is False
        assert await cache.health_check() == "degraded"

    @pytest.mark.asyncio
    async def test_warmup_and_health_with_reachable_backend(self, cache):
        assert await cache.warmup() is True
        assert await cache.health_check() == "ok"

    @pytest.mark.asyncio
    async def test_aclose_abandons_slow_writes(self):
        """Pending writes get the shutdown timeout, then are dropped without failing the writer."""
        backend = SlowCacheBackend(delay=5)
        cache = ResilientCacheClient(backend, operation_timeout=10)

        write = asyncio.ensure_future(cache.set("k", b"v", 60))
        await asyncio.sleep(0.01)
        await cache.aclose(timeout=0.05)

        assert await write is False
        assert len(backend) == 0

    @pytest.mark.asyncio
    async def test_cancelled_writer_still_sees_cancellation(self):
        cache = ResilientCacheClient(SlowCacheBackend(delay=5), operation_timeout=10)

        write = asyncio.ensure_future(cache.set("k", b"v", 60))
        await asyncio.sleep(0.01)
        write.cancel()

        with pytest.raises(asyncio.CancelledError):
            await write
        await cache.aclose(timeout=0.01)

    @pytest.mark.asyncio
    async def test_writes_after_close_are_skipped(self, cache, backend):
        await cache.aclose()

        assert await cache.set("k", b"v", 60) is False
        assert backend.set_calls == []

    def test_backend_name(self, cache):
        assert cache.backend_name == "memory"
        redis_backed = ResilientCacheClient(RedisCacheBackend("redis://localhost:6379/0", client=MagicMock()))
        assert redis_backed.backend_name == "redis"


class TestCacheHelpers:
    """Test cases for cache construction and error classification."""

    @pytest.mark.parametrize("error, category", [
        (asyncio.TimeoutError(), "timeout"),
        (RedisConnectionError("refused"), "connectivity"),
        (ConnectionRefusedError(), "connectivity"),
        (UnicodeDecodeError("utf-8", b"\xff", 0, 1, "bad"), "serialization"),
        (ResponseError("WRONGTYPE"), "backend"),
        (RuntimeError("boom"), "unexpected"),
    ])
    def test_categorize_cache_error(self, error, category):
        assert categorize_cache_error(error) == category

    def test_no_connection_string_selects_memory(self):
        assert create_cache_client(None).backend_name == "memory"
        assert create_cache_client("").backend_name == "memory"

    def test_invalid_connection_string_selects_memory(self):
        assert create_cache_client("not-a-redis-url").backend_name == "memory"

    def test_redis_connection_string_selects_redis(self):
        cache = create_cache_client("redis://localhost:6379/0")
        assert cache.backend_name == "redis"
