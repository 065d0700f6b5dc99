from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class LearningRecord:
    """One logged study session.

    cumulative_learning_minutes is a materialized running total: at write
    time it equals the sum of session_duration_minutes over every record of
    the same enrollment, this one included.  session_date is derived from
    session_start_time in the service time zone and is never set directly.
    """

    id: UUID
    enrollment_id: UUID
    course_id: UUID
    learner_id: UUID
    session_start_time: datetime
    session_date: date
    created_at: datetime
    session_end_time: datetime | None = None
    session_duration_minutes: int | None = None
    progress_percentage: int | None = None
    understanding_level: int | None = None  # 1..5
    learning_memo: str | None = None
    cumulative_learning_minutes: int = 0
    idempotency_key: str | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(
        *,
        enrollment_id: UUID,
        course_id: UUID,
        learner_id: UUID,
        session_start_time: datetime,
        session_date: date,
        created_at: datetime,
        session_end_time: datetime | None = None,
        session_duration_minutes: int | None = None,
        progress_percentage: int | None = None,
        understanding_level: int | None = None,
        learning_memo: str | None = None,
        idempotency_key: str | None = None,
    ) -> LearningRecord:
        return LearningRecord(
            id=uuid4(),
            enrollment_id=enrollment_id,
            course_id=course_id,
            learner_id=learner_id,
            session_start_time=session_start_time,
            session_date=session_date,
            created_at=created_at,
            session_end_time=session_end_time,
            session_duration_minutes=session_duration_minutes,
            progress_percentage=progress_percentage,
            understanding_level=understanding_level,
            learning_memo=learning_memo,
            idempotency_key=idempotency_key,
            updated_at=created_at,
        )

    @property
    def minutes(self) -> int:
        """Duration as it counts toward the cumulative total (unset → 0)."""
        return self.session_duration_minutes or 0
