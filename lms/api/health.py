"""Health and readiness endpoints.

  /health (liveness): "is this process alive?"  Always 200 while the
    process can answer; the body reports per-dependency status so an
    operator can see a degraded backend without the orchestrator
    restarting a healthy process.

  /ready (readiness): "can this instance take traffic?"  503 when the
    database is configured but unreachable; the load balancer stops
    routing here until it recovers.  Redis is not critical: summaries are
    recomputed when the cache is down.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from lms.db.engine import engine, ping_database
from lms.db.redis import ping_redis, redis_pool

router = APIRouter(tags=["health"])


async def _checks() -> dict[str, str]:
    checks: dict[str, str] = {}
    if engine is None:
        checks["database"] = "not_configured"
    else:
        checks["database"] = "ok" if await ping_database() else "degraded"
    if redis_pool is None:
        checks["redis"] = "not_configured"
    else:
        checks["redis"] = "ok" if await ping_redis() else "degraded"
    return checks


@router.get("/health")
async def health() -> dict:
    checks = await _checks()
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if engine is not None and not await ping_database():
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
