"""PostgreSQL implementation of LearningRecordRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.errors import IdempotencyConflict
from lms.db.tables import LearningRecordRow
from lms.models.learning_record import LearningRecord
from lms.repos.pg_errors import translate_store_errors

_IDEMPOTENCY_CONSTRAINT = "uq_learning_record_idempotency"


class PgLearningRecordRepo:
    """Satisfies the LearningRecordRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _many(self, stmt) -> list[LearningRecord]:
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_record(r) for r in rows]

    @translate_store_errors
    async def get(self, record_id: UUID) -> LearningRecord | None:
        row = await self._session.get(LearningRecordRow, record_id)
        return None if row is None else _row_to_record(row)

    @translate_store_errors
    async def put(self, record: LearningRecord) -> None:
        row = await self._session.get(LearningRecordRow, record.id)
        if row is None:
            # The key lookup runs under the enrollment lock only, so the same
            # key on another enrollment can race us to the insert.
            try:
                async with self._session.begin_nested():
                    self._session.add(_record_to_row(record))
            except IntegrityError as e:
                if _IDEMPOTENCY_CONSTRAINT not in str(e.orig):
                    raise
                raise IdempotencyConflict(
                    "idempotency key already used for another session"
                ) from None
            return

        row.session_end_time = record.session_end_time
        row.session_duration_minutes = record.session_duration_minutes
        row.progress_percentage = record.progress_percentage
        row.understanding_level = record.understanding_level
        row.learning_memo = record.learning_memo
        row.cumulative_learning_minutes = record.cumulative_learning_minutes
        row.updated_at = record.updated_at
        await self._session.flush()

    @translate_store_errors
    async def delete(self, record_id: UUID) -> bool:
        row = await self._session.get(LearningRecordRow, record_id)
        if row is None:
            return False
        await self._session.delete(row)
        await self._session.flush()
        return True

    @translate_store_errors
    async def list_by_enrollment(self, enrollment_id: UUID) -> list[LearningRecord]:
        return await self._many(
            select(LearningRecordRow).where(
                LearningRecordRow.enrollment_id == enrollment_id
            )
        )

    @translate_store_errors
    async def list_by_learner(self, learner_id: UUID) -> list[LearningRecord]:
        return await self._many(
            select(LearningRecordRow).where(LearningRecordRow.learner_id == learner_id)
        )

    @translate_store_errors
    async def list_all(self) -> list[LearningRecord]:
        return await self._many(select(LearningRecordRow))

    @translate_store_errors
    async def find_by_idempotency_key(
        self, learner_id: UUID, key: str
    ) -> LearningRecord | None:
        stmt = select(LearningRecordRow).where(
            LearningRecordRow.learner_id == learner_id,
            LearningRecordRow.idempotency_key == key,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return None if row is None else _row_to_record(row)

    @translate_store_errors
    async def count_by_enrollment(self, enrollment_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(LearningRecordRow)
            .where(LearningRecordRow.enrollment_id == enrollment_id)
        )
        return (await self._session.execute(stmt)).scalar_one()


def _record_to_row(r: LearningRecord) -> LearningRecordRow:
    return LearningRecordRow(
        id=r.id,
        enrollment_id=r.enrollment_id,
        course_id=r.course_id,
        learner_id=r.learner_id,
        session_start_time=r.session_start_time,
        session_end_time=r.session_end_time,
        session_duration_minutes=r.session_duration_minutes,
        session_date=r.session_date,
        progress_percentage=r.progress_percentage,
        understanding_level=r.understanding_level,
        learning_memo=r.learning_memo,
        cumulative_learning_minutes=r.cumulative_learning_minutes,
        idempotency_key=r.idempotency_key,
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _row_to_record(row: LearningRecordRow) -> LearningRecord:
    return LearningRecord(
        id=row.id,
        enrollment_id=row.enrollment_id,
        course_id=row.course_id,
        learner_id=row.learner_id,
        session_start_time=row.session_start_time,
        session_end_time=row.session_end_time,
        session_duration_minutes=row.session_duration_minutes,
        session_date=row.session_date,
        progress_percentage=row.progress_percentage,
        understanding_level=row.understanding_level,
        learning_memo=row.learning_memo,
        cumulative_learning_minutes=row.cumulative_learning_minutes,
        idempotency_key=row.idempotency_key,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
