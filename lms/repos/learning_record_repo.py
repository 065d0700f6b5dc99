from __future__ import annotations

from typing import Protocol
from uuid import UUID

from lms.core.errors import IdempotencyConflict
from lms.models.learning_record import LearningRecord


class LearningRecordRepo(Protocol):
    async def get(self, record_id: UUID) -> LearningRecord | None: ...
    async def put(self, record: LearningRecord) -> None: ...
    async def delete(self, record_id: UUID) -> bool: ...
    async def list_by_enrollment(self, enrollment_id: UUID) -> list[LearningRecord]: ...
    async def list_by_learner(self, learner_id: UUID) -> list[LearningRecord]: ...
    async def list_all(self) -> list[LearningRecord]: ...
    async def find_by_idempotency_key(
        self, learner_id: UUID, key: str
    ) -> LearningRecord | None: ...
    async def count_by_enrollment(self, enrollment_id: UUID) -> int: ...


class InMemoryLearningRecordRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, LearningRecord] = {}

    async def get(self, record_id: UUID) -> LearningRecord | None:
        return self._by_id.get(record_id)

    async def put(self, record: LearningRecord) -> None:
        if record.idempotency_key is not None:
            for other in self._by_id.values():
                if (
                    other.id != record.id
                    and other.learner_id == record.learner_id
                    and other.idempotency_key == record.idempotency_key
                ):
                    raise IdempotencyConflict(
                        "idempotency key already used for another session"
                    )
        self._by_id[record.id] = record

    async def delete(self, record_id: UUID) -> bool:
        return self._by_id.pop(record_id, None) is not None

    async def list_by_enrollment(self, enrollment_id: UUID) -> list[LearningRecord]:
        return [r for r in self._by_id.values() if r.enrollment_id == enrollment_id]

    async def list_by_learner(self, learner_id: UUID) -> list[LearningRecord]:
        return [r for r in self._by_id.values() if r.learner_id == learner_id]

    async def list_all(self) -> list[LearningRecord]:
        return list(self._by_id.values())

    async def find_by_idempotency_key(
        self, learner_id: UUID, key: str
    ) -> LearningRecord | None:
        for r in self._by_id.values():
            if r.learner_id == learner_id and r.idempotency_key == key:
                return r
        return None

    async def count_by_enrollment(self, enrollment_id: UUID) -> int:
        return sum(1 for r in self._by_id.values() if r.enrollment_id == enrollment_id)

    def _snapshot(self, enrollment_id: UUID) -> dict[UUID, LearningRecord]:
        return {
            rid: r for rid, r in self._by_id.items() if r.enrollment_id == enrollment_id
        }

    def _restore(
        self, enrollment_id: UUID, snapshot: dict[UUID, LearningRecord]
    ) -> None:
        for rid in [
            rid for rid, r in self._by_id.items() if r.enrollment_id == enrollment_id
        ]:
            del self._by_id[rid]
        self._by_id.update(snapshot)
