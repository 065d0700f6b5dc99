"""The persistent store as the services see it.

A Store bundles the four repositories with one extra capability,
``enrollment_scope(enrollment_id)``: an async context manager that makes
the enclosed reads and writes for that enrollment

  1. mutually exclusive with every other scope on the same enrollment, so
     the read-sum-write of cumulative_learning_minutes cannot lose updates;
  2. all-or-nothing, so a learning-record write and the enrollment progress
     change it triggers either both land or neither does.

Scopes on different enrollments run concurrently.  Scopes must not nest.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol
from uuid import UUID

from lms.repos.course_repo import CourseRepo, InMemoryCourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from lms.repos.learning_record_repo import (
    InMemoryLearningRecordRepo,
    LearningRecordRepo,
)
from lms.repos.user_repo import InMemoryUserRepo, UserRepo


class Store(Protocol):
    users: UserRepo
    courses: CourseRepo
    enrollments: EnrollmentRepo
    records: LearningRecordRepo

    def enrollment_scope(
        self, enrollment_id: UUID
    ) -> AbstractAsyncContextManager[None]: ...


class InMemoryStore:
    """Process-local store for dev and tests.

    Exclusion is one asyncio.Lock per enrollment id, held in the map only
    while some scope is holding or waiting for it.  Atomicity is a
    snapshot of the enrollment row and its records taken on entry and put
    back if the body raises; only scope holders touch those rows, so the
    restore cannot clobber another writer.
    """

    def __init__(self) -> None:
        self.users = InMemoryUserRepo()
        self.courses = InMemoryCourseRepo()
        self.enrollments = InMemoryEnrollmentRepo()
        self.records = InMemoryLearningRecordRepo()
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._lock_users: dict[UUID, int] = {}

    @asynccontextmanager
    async def enrollment_scope(self, enrollment_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(enrollment_id, asyncio.Lock())
        self._lock_users[enrollment_id] = self._lock_users.get(enrollment_id, 0) + 1
        try:
            async with lock:
                enrollment = await self.enrollments.get(enrollment_id)
                records = self.records._snapshot(enrollment_id)
                try:
                    yield
                except BaseException:
                    self.enrollments._restore(enrollment_id, enrollment)
                    self.records._restore(enrollment_id, records)
                    raise
        finally:
            self._lock_users[enrollment_id] -= 1
            if self._lock_users[enrollment_id] == 0:
                del self._lock_users[enrollment_id]
                del self._locks[enrollment_id]

    def clear(self) -> None:
        """Drop all rows; test fixtures call this between tests."""
        self.users = InMemoryUserRepo()
        self.courses = InMemoryCourseRepo()
        self.enrollments = InMemoryEnrollmentRepo()
        self.records = InMemoryLearningRecordRepo()
        self._locks.clear()
        self._lock_users.clear()
