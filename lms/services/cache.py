"""Read-through cache for enrollment summaries.

A summary (record count, total minutes, latest session day, current
status and progress) is computed from every record of an enrollment, so
it is cached under ``summary:{enrollment_id}``:

    GET summary → cache hit  → return
                → cache miss → compute from the store → populate → return

Two invalidation strategies cover each other:

  1. TTL: every entry expires on its own, so a missed invalidation heals.
  2. Explicit: every learning-record write and enrollment update deletes
     the enrollment's entry, so the next read recomputes.

The cache only ever holds derived data; the stored records stay the
source of truth.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable
from uuid import UUID

from redis.exceptions import RedisError

from lms.core.metrics import CACHE_OPERATIONS
from lms.db.redis import redis_pool

logger = logging.getLogger(__name__)

SUMMARY_TTL_SECONDS = 300


def summary_key(enrollment_id: UUID) -> str:
    return f"summary:{enrollment_id}"


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...


class InMemoryCacheService:
    """In-memory cache for dev and tests; no TTL enforcement.

    The autouse fixture in conftest.py clears it between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        value = self._store.get(key)
        CACHE_OPERATIONS.labels(operation="miss" if value is None else "hit").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = value

    async def delete(self, key: str) -> None:
        CACHE_OPERATIONS.labels(operation="invalidate").inc()
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()


class RedisCacheService:
    """Redis-backed cache, shared by every API instance.

    Redis failures degrade to a miss (reads) or a no-op (writes); the TTL
    bounds how long a missed invalidation can serve a stale summary.
    """

    _PREFIX = "lms:cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(f"{self._PREFIX}{key}")
        except RedisError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            value = None
        CACHE_OPERATIONS.labels(operation="miss" if value is None else "hit").inc()
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)
        except RedisError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    async def delete(self, key: str) -> None:
        CACHE_OPERATIONS.labels(operation="invalidate").inc()
        try:
            await self._redis.delete(f"{self._PREFIX}{key}")
        except RedisError as e:
            logger.warning("Cache invalidation failed for %s: %s", key, e)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
