"""Prometheus metrics endpoint.

Scraped by Prometheus; returns the text exposition format, not JSON.
Besides the HTTP metrics it exposes the enrollment transition, learning
record, business-rule rejection and summary cache counters declared in
lms.core.metrics.

Restrict access in production (network policy or an internal port):
rejection counters reveal request patterns.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
