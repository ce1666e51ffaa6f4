"""
Cache-aside read path.

Read the cache, deserialize on a hit, otherwise generate, write back with a
TTL and return. Cache problems never surface to the caller; only caller-input
errors and errors raised by the generator do.
"""

from typing import Callable, Generic, List, Optional, Sequence, Type, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.cache import TTL, CacheStatus, ResilientCacheClient, ttl_to_seconds
from shared.errors import ValidationError
from shared.logging import get_logger
from shared.metrics import ApplicationMetrics

T = TypeVar("T")


def build_cache_key(namespace: str, entity: str, count: int) -> str:
    """Cache keys are ``{namespace}:{entity}:{count}``; each count is its own entry."""
    return f"{namespace}:{entity}:{count}"


class CacheAsideService(Generic[T]):
    """Cache-aside orchestration for lists of one pydantic-compatible item type."""

    def __init__(self,
                 cache: ResilientCacheClient,
                 item_type: Type[T],
                 *,
                 entity: str,
                 metrics: Optional[ApplicationMetrics] = None):
        self.cache = cache
        self.entity = entity
        self.metrics = metrics
        self.logger = get_logger(f"shared.cache_aside.{entity}")
        self._adapter: TypeAdapter = TypeAdapter(List[item_type])  # type: ignore[valid-type]

    def serialize(self, items: Sequence[T]) -> bytes:
        return self._adapter.dump_json(list(items), by_alias=True)

    def deserialize(self, payload: bytes) -> List[T]:
        return self._adapter.validate_json(payload)

    def _record(self, hit: bool):
        if not self.metrics:
            return
        try:
            if hit:
                self.metrics.record_cache_hit(self.entity)
            else:
                self.metrics.record_cache_miss(self.entity)
        except Exception as exc:  # pragma: no cover - diagnostics never change control flow
            self.logger.debug("Failed to record cache metric", error=str(exc))

    async def get_or_generate(self,
                              key: str,
                              count: int,
                              generator: Callable[[], Sequence[T]],
                              ttl: TTL) -> List[T]:
        """Return ``count`` items for ``key`` from cache, or freshly generated."""
        if not key:
            raise ValidationError("Cache key must not be empty")
        if count < 0:
            raise ValidationError("Count must not be negative", details={"count": count})
        ttl_to_seconds(ttl)
        if count == 0:
            return []

        result = await self.cache.get_result(key)
        if result.is_hit:
            try:
                items = self.deserialize(result.payload)
            except (PydanticValidationError, ValueError) as exc:
                self.logger.warning("Cached payload could not be deserialized, regenerating", key=key, error=str(exc))
            else:
                self._record(hit=True)
                self.logger.info("Cache HIT", entity=self.entity, key=key, count=count)
                return items

        self._record(hit=False)
        if result.status is CacheStatus.MISS:
            self.logger.info("Cache MISS", entity=self.entity, key=key, count=count)

        items = list(generator())

        try:
            payload = self.serialize(items)
        except (PydanticValidationError, ValueError, TypeError) as exc:
            self.logger.warning("Generated items could not be serialized, skipping cache write", key=key, error=str(exc))
        else:
            await self.cache.set(key, payload, ttl)

        return items
