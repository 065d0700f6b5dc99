"""Resource-scoped authorization decisions."""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

import pytest

from lms.core.errors import Forbidden, NotOwner
from lms.models.learning_record import LearningRecord
from lms.models.principal import ROLE_ADMIN, ROLE_LEARNER, Principal
from lms.repos.store import InMemoryStore
from lms.services.access_guard import (
    can_access,
    can_access_course,
    can_access_record,
    ensure_access,
    ensure_admin,
)
from tests.conftest import T0, principal_of, seed_course, seed_enrollment, seed_learner

ADMIN = Principal(user_id=uuid4(), role=ROLE_ADMIN)


class _BrokenRepo:
    """Every lookup fails, as an unreachable database would."""

    async def find(self, *_args):
        raise ConnectionError("store down")

    async def get(self, *_args):
        raise ConnectionError("store down")


_CAN_ACCESS_CASES = [
    # (role, owns_resource, expected)
    (ROLE_ADMIN, False, True),
    (ROLE_LEARNER, True, True),
    (ROLE_LEARNER, False, False),
]


@pytest.mark.parametrize(
    "role,owns,expected",
    _CAN_ACCESS_CASES,
    ids=[f"{r} owns={o} -> {e}" for r, o, e in _CAN_ACCESS_CASES],
)
def test_can_access(role: str, owns: bool, expected: bool) -> None:
    principal = Principal(user_id=uuid4(), role=role)
    owner_id = principal.user_id if owns else uuid4()
    assert can_access(principal, owner_id) is expected


def test_ensure_access_raises_not_owner() -> None:
    learner = Principal(user_id=uuid4(), role=ROLE_LEARNER)
    ensure_access(learner, learner.user_id, action="read")
    with pytest.raises(NotOwner):
        ensure_access(learner, uuid4(), action="read")


def test_not_owner_is_a_forbidden() -> None:
    assert issubclass(NotOwner, Forbidden)
    assert NotOwner.status_code == 403


def test_ensure_admin() -> None:
    ensure_admin(ADMIN, action="assign")
    with pytest.raises(Forbidden):
        ensure_admin(Principal(user_id=uuid4(), role=ROLE_LEARNER), action="assign")


def test_can_access_course_requires_enrollment(store: InMemoryStore) -> None:
    enrolled = seed_learner(store)
    outsider = seed_learner(store)
    course = seed_course(store)
    seed_enrollment(store, enrolled, course)

    assert asyncio.run(can_access_course(principal_of(enrolled), course.id, store.enrollments))
    assert not asyncio.run(
        can_access_course(principal_of(outsider), course.id, store.enrollments)
    )
    assert asyncio.run(can_access_course(ADMIN, course.id, store.enrollments))


def test_can_access_record(store: InMemoryStore) -> None:
    owner = seed_learner(store)
    other = seed_learner(store)
    course = seed_course(store)
    enrollment = seed_enrollment(store, owner, course)
    record = LearningRecord.new(
        enrollment_id=enrollment.id,
        course_id=course.id,
        learner_id=owner.id,
        session_start_time=T0,
        session_date=T0.date(),
        created_at=T0,
    )
    asyncio.run(store.records.put(record))

    assert asyncio.run(can_access_record(principal_of(owner), record.id, store.records))
    assert not asyncio.run(can_access_record(principal_of(other), record.id, store.records))
    assert not asyncio.run(can_access_record(principal_of(owner), uuid4(), store.records))


def test_lookup_failure_denies(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING)
    learner = Principal(user_id=uuid4(), role=ROLE_LEARNER)
    broken = _BrokenRepo()

    assert not asyncio.run(can_access_course(learner, uuid4(), broken))  # type: ignore[arg-type]
    assert not asyncio.run(can_access_record(learner, uuid4(), broken))  # type: ignore[arg-type]
    assert "denying" in caplog.text


def test_admin_never_hits_the_store() -> None:
    broken = _BrokenRepo()
    assert asyncio.run(can_access_course(ADMIN, uuid4(), broken))  # type: ignore[arg-type]
    assert asyncio.run(can_access_record(ADMIN, uuid4(), broken))  # type: ignore[arg-type]
