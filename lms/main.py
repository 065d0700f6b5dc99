from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lms.api.courses import router as courses_router
from lms.api.enrollments import router as enrollments_router
from lms.api.health import router as health_router
from lms.api.learning_records import router as learning_records_router
from lms.api.metrics_endpoint import router as metrics_router
from lms.core.config import SETTINGS
from lms.core.errors import DomainError
from lms.core.logging import setup_logging
from lms.core.metrics import DOMAIN_ERRORS
from lms.db.engine import lifespan_db
from lms.db.redis import lifespan_redis
from lms.middleware.metrics import MetricsMiddleware
from lms.middleware.request_context import (
    RequestContextMiddleware,
    install_request_context_filter,
)

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_context_filter()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="lms-core",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """One mapping from business-rule errors to HTTP responses."""
    name = type(exc).__name__
    DOMAIN_ERRORS.labels(error=name).inc()
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s %s rejected: %s (%s)", request.method, request.url.path, name, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": name},
    )


# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(courses_router)
app.include_router(enrollments_router)
app.include_router(learning_records_router)

logger.info(
    "lms-core started  env=%s log_level=%s port=%d tz=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.service_timezone,
    "on" if SETTINGS.is_dev else "off",
)
