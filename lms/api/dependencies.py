from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lms.db.engine import async_session_factory, session_scope
from lms.middleware.request_context import user_id_var
from lms.models.principal import ROLES, Principal
from lms.repos.pg_store import PgStore
from lms.repos.store import InMemoryStore, Store
from lms.services import token_service

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# Backing store when DATABASE_URL is unset (dev, tests).
memory_store = InMemoryStore()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Verify the bearer token and return the caller as a Principal.

    Used as a FastAPI dependency on every protected endpoint.  What the
    principal may do is decided later, per resource, by access_guard.
    Async so the user_id context variable is set on the request task
    itself (sync dependencies run in a worker thread).
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        user_id = UUID(str(claims["sub"]))
    except ValueError:
        logger.warning("Token rejected: sub=%r is not a user id", claims["sub"])
        raise _unauthorized("Invalid token") from None
    role = claims["role"]
    if role not in ROLES:
        logger.warning("Token rejected: unknown role=%r for user=%s", role, user_id)
        raise _unauthorized("Invalid token")

    principal = Principal(user_id=user_id, role=role)
    user_id_var.set(str(user_id))
    logger.debug("Token validated for user=%s role=%s", user_id, role)
    return principal


async def get_store() -> AsyncGenerator[Store, None]:
    """Request-scoped Store.

    PostgreSQL when configured: one session per request, committed after
    the handler returns and rolled back if it raises.  Otherwise the
    process-wide in-memory store.
    """
    if async_session_factory is None:
        yield memory_store
        return
    async with session_scope() as session:
        yield PgStore(session)
