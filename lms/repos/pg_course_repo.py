"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import CourseRow
from lms.models.course import Course
from lms.repos.pg_errors import translate_store_errors


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @translate_store_errors
    async def get_by_id(self, course_id: UUID) -> Course | None:
        stmt = select(CourseRow).where(CourseRow.id == course_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Course(id=row.id, title=row.title, is_active=row.is_active)

    @translate_store_errors
    async def add(self, course: Course) -> None:
        self._session.add(
            CourseRow(id=course.id, title=course.title, is_active=course.is_active)
        )
        await self._session.flush()
