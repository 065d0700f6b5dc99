from __future__ import annotations

import asyncio
from uuid import uuid4

from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from lms.services.cache import InMemoryCacheService, RedisCacheService, summary_key


def _ops(operation: str) -> float:
    value = REGISTRY.get_sample_value(
        "cache_operations_total", labels={"operation": operation}
    )
    return value or 0.0


def test_summary_key_is_per_enrollment() -> None:
    enrollment_id = uuid4()
    assert summary_key(enrollment_id) == f"summary:{enrollment_id}"


def test_in_memory_get_set_delete() -> None:
    cache = InMemoryCacheService()
    misses, hits = _ops("miss"), _ops("hit")

    assert asyncio.run(cache.get("k")) is None
    asyncio.run(cache.set("k", "v", 60))
    assert asyncio.run(cache.get("k")) == "v"
    asyncio.run(cache.delete("k"))
    assert asyncio.run(cache.get("k")) is None

    assert _ops("miss") - misses == 2
    assert _ops("hit") - hits == 1


class _DownRedis:
    """Every call fails the way redis-py does when the server is gone."""

    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def setex(self, key, ttl, value):
        raise RedisConnectionError("connection refused")

    async def delete(self, *keys):
        raise RedisConnectionError("connection refused")


def test_redis_outage_degrades_to_miss() -> None:
    cache = RedisCacheService(_DownRedis())
    assert asyncio.run(cache.get("summary:x")) is None
    asyncio.run(cache.set("summary:x", "{}", 60))
    asyncio.run(cache.delete("summary:x"))


class _RecordingRedis:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    async def get(self, key):
        self.calls.append(("get", key))
        return None

    async def setex(self, key, ttl, value):
        self.calls.append(("setex", key, ttl, value))

    async def delete(self, *keys):
        self.calls.append(("delete", *keys))


def test_redis_keys_are_prefixed() -> None:
    fake = _RecordingRedis()
    cache = RedisCacheService(fake)
    asyncio.run(cache.set("summary:x", "{}", 300))
    asyncio.run(cache.get("summary:x"))
    asyncio.run(cache.delete("summary:x"))
    assert fake.calls == [
        ("setex", "lms:cache:summary:x", 300, "{}"),
        ("get", "lms:cache:summary:x"),
        ("delete", "lms:cache:summary:x"),
    ]
