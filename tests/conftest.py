from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from lms.api.dependencies import memory_store
from lms.main import app
from lms.models.course import Course
from lms.models.enrollment import Enrollment
from lms.models.principal import ROLE_ADMIN, ROLE_LEARNER, Principal
from lms.models.user import User
from lms.repos.store import InMemoryStore
from lms.services import token_service
from lms.services.cache import InMemoryCacheService, cache_service

# Ensure repo root is on sys.path so `import lms` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# A Tuesday morning, UTC.
T0 = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def at(minutes: int = 0, *, days: int = 0) -> datetime:
    return T0 + timedelta(days=days, minutes=minutes)


@pytest.fixture(autouse=True)
def reset_store() -> None:
    """Empty the app's in-memory store between tests."""
    memory_store.clear()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear the summary cache between tests."""
    if isinstance(cache_service, InMemoryCacheService):
        cache_service.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def store() -> InMemoryStore:
    """A fresh store for service-level tests (not wired to the app)."""
    return InMemoryStore()


def mint_token(user: User | Principal, role: str | None = None) -> str:
    """Create a valid ES256 JWT for testing."""
    user_id = user.user_id if isinstance(user, Principal) else user.id
    return token_service.create_access_token(sub=str(user_id), role=role or user.role)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def principal_of(user: User) -> Principal:
    return Principal(user_id=user.id, role=user.role)


# ---------------------------------------------------------------------------
# Seed helpers (in-memory repos never suspend, so asyncio.run is fine)
# ---------------------------------------------------------------------------


def seed_user(
    store: InMemoryStore, *, role: str = ROLE_LEARNER, is_active: bool = True
) -> User:
    user = User.new(email=f"{role}-{len(store.users._by_id)}@example.com", role=role)
    user = replace(user, is_active=is_active)
    asyncio.run(store.users.add(user))
    return user


def seed_learner(store: InMemoryStore) -> User:
    return seed_user(store, role=ROLE_LEARNER)


def seed_admin(store: InMemoryStore) -> User:
    return seed_user(store, role=ROLE_ADMIN)


def seed_course(store: InMemoryStore, *, is_active: bool = True) -> Course:
    course = Course.new(title="Data Privacy Basics", is_active=is_active)
    asyncio.run(store.courses.add(course))
    return course


def seed_enrollment(
    store: InMemoryStore, learner: User, course: Course, **overrides
) -> Enrollment:
    """Insert an enrollment directly, bypassing the service rules."""
    enrollment = Enrollment.new(
        learner_id=learner.id, course_id=course.id, assigned_at=T0
    )
    enrollment = replace(enrollment, **overrides)
    asyncio.run(store.enrollments.put(enrollment))
    return enrollment
