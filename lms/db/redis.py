"""Redis connection management.

Mirrors engine.py: with REDIS_URL set, a real connection pool backs the
summary cache; without it (local dev, tests) the cache falls back to an
in-memory dict and no Redis server is needed.

Redis only ever holds derived, expiring data here (cached enrollment
summaries).  Losing it costs a recomputation, never a record.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from lms.core.config import SETTINGS

logger = logging.getLogger(__name__)

# None when REDIS_URL is not set; every consumer checks and falls back.
if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


async def ping_redis() -> bool:
    """True when Redis answers; False when unreachable or not configured."""
    if redis_pool is None:
        return False
    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False
    return True


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; summary cache is in-memory")
        yield
        return

    if await ping_redis():
        logger.info("Redis connected")
    else:
        # Keep serving: the cache is an optimization, reads recompute.
        logger.error("Redis unreachable on startup; summaries will not be shared")

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
