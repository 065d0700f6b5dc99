"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.errors import DuplicateEnrollment, StoreConflict
from lms.db.tables import EnrollmentRow
from lms.models.enrollment import Enrollment
from lms.repos.pg_errors import translate_store_errors


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL.

    Writes use the version column as an optimistic lock: an UPDATE only
    matches the row it read, so a concurrent writer surfaces as
    StoreConflict instead of a silently lost update.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _one(self, stmt) -> Enrollment | None:
        # populate_existing: the version-guarded UPDATE below bypasses the
        # identity map, so never trust a cached row.
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return None if row is None else _row_to_enrollment(row)

    @translate_store_errors
    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        return await self._one(
            select(EnrollmentRow).where(EnrollmentRow.id == enrollment_id)
        )

    @translate_store_errors
    async def find(self, learner_id: UUID, course_id: UUID) -> Enrollment | None:
        return await self._one(
            select(EnrollmentRow).where(
                EnrollmentRow.learner_id == learner_id,
                EnrollmentRow.course_id == course_id,
            )
        )

    @translate_store_errors
    async def put(self, enrollment: Enrollment) -> None:
        if enrollment.version == 1:
            try:
                async with self._session.begin_nested():
                    self._session.add(_enrollment_to_row(enrollment))
            except IntegrityError:
                raise DuplicateEnrollment(
                    "learner is already enrolled in this course"
                ) from None
            return

        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.id == enrollment.id,
                EnrollmentRow.version == enrollment.version - 1,
            )
            .values(
                status=enrollment.status,
                progress_percentage=enrollment.progress_percentage,
                started_at=enrollment.started_at,
                completed_at=enrollment.completed_at,
                due_date=enrollment.due_date,
                updated_at=enrollment.updated_at,
                version=enrollment.version,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise StoreConflict(
                f"enrollment {enrollment.id} was modified concurrently"
            )

    @translate_store_errors
    async def delete(self, enrollment_id: UUID) -> bool:
        stmt = (
            delete(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    @translate_store_errors
    async def list_by_learner(self, learner_id: UUID) -> list[Enrollment]:
        stmt = select(EnrollmentRow).where(EnrollmentRow.learner_id == learner_id)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    @translate_store_errors
    async def list_all(self) -> list[Enrollment]:
        rows = (await self._session.execute(select(EnrollmentRow))).scalars().all()
        return [_row_to_enrollment(r) for r in rows]


def _enrollment_to_row(e: Enrollment) -> EnrollmentRow:
    return EnrollmentRow(
        id=e.id,
        learner_id=e.learner_id,
        course_id=e.course_id,
        status=e.status,
        progress_percentage=e.progress_percentage,
        assigned_at=e.assigned_at,
        started_at=e.started_at,
        completed_at=e.completed_at,
        due_date=e.due_date,
        assigned_by=e.assigned_by,
        updated_at=e.updated_at,
        version=e.version,
    )


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        learner_id=row.learner_id,
        course_id=row.course_id,
        status=row.status,
        progress_percentage=row.progress_percentage,
        assigned_at=row.assigned_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
        due_date=row.due_date,
        assigned_by=row.assigned_by,
        updated_at=row.updated_at,
        version=row.version,
    )
