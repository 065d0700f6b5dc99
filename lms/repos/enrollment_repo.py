from __future__ import annotations

from typing import Protocol
from uuid import UUID

from lms.core.errors import DuplicateEnrollment, StoreConflict
from lms.models.enrollment import Enrollment


class EnrollmentRepo(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def find(self, learner_id: UUID, course_id: UUID) -> Enrollment | None: ...
    async def put(self, enrollment: Enrollment) -> None: ...
    async def delete(self, enrollment_id: UUID) -> bool: ...
    async def list_by_learner(self, learner_id: UUID) -> list[Enrollment]: ...
    async def list_all(self) -> list[Enrollment]: ...


def check_version(stored: Enrollment | None, incoming: Enrollment) -> None:
    """Optimistic concurrency rule shared by every EnrollmentRepo.

    version 1 means "insert"; any other version must be exactly one past
    the stored row, otherwise another writer got there first.
    """
    if stored is None:
        if incoming.version != 1:
            raise StoreConflict(f"enrollment {incoming.id} no longer exists")
        return
    if incoming.version != stored.version + 1:
        raise StoreConflict(
            f"enrollment {incoming.id} was modified concurrently "
            f"(stored v{stored.version}, write v{incoming.version})"
        )


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Enrollment] = {}
        self._by_pair: dict[tuple[UUID, UUID], UUID] = {}

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def find(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        enrollment_id = self._by_pair.get((learner_id, course_id))
        if enrollment_id is None:
            return None
        return self._by_id.get(enrollment_id)

    async def put(self, enrollment: Enrollment) -> None:
        stored = self._by_id.get(enrollment.id)
        check_version(stored, enrollment)

        pair = (enrollment.learner_id, enrollment.course_id)
        if stored is None and pair in self._by_pair:
            raise DuplicateEnrollment("learner is already enrolled in this course")

        self._by_id[enrollment.id] = enrollment
        self._by_pair[pair] = enrollment.id

    async def delete(self, enrollment_id: UUID) -> bool:
        enrollment = self._by_id.pop(enrollment_id, None)
        if enrollment is None:
            return False
        self._by_pair.pop((enrollment.learner_id, enrollment.course_id), None)
        return True

    async def list_by_learner(self, learner_id: UUID) -> list[Enrollment]:
        return [e for e in self._by_id.values() if e.learner_id == learner_id]

    async def list_all(self) -> list[Enrollment]:
        return list(self._by_id.values())

    def _restore(self, enrollment_id: UUID, snapshot: Enrollment | None) -> None:
        """Put a row back exactly as it was (used by the store's rollback)."""
        current = self._by_id.pop(enrollment_id, None)
        if current is not None:
            self._by_pair.pop((current.learner_id, current.course_id), None)
        if snapshot is not None:
            self._by_id[enrollment_id] = snapshot
            self._by_pair[(snapshot.learner_id, snapshot.course_id)] = enrollment_id
