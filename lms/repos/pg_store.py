"""PostgreSQL-backed Store, bound to one request-scoped session."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import EnrollmentRow
from lms.repos.pg_course_repo import PgCourseRepo
from lms.repos.pg_enrollment_repo import PgEnrollmentRepo
from lms.repos.pg_errors import translate_store_errors
from lms.repos.pg_learning_record_repo import PgLearningRecordRepo
from lms.repos.pg_user_repo import PgUserRepo


class PgStore:
    """Store over one AsyncSession.

    enrollment_scope opens a SAVEPOINT and takes a row lock on the
    enrollment (SELECT ... FOR UPDATE).  Concurrent scopes on the same
    enrollment, in this process or another, queue on that lock until the
    holder's request commits or rolls back.  An exception inside the scope
    rolls back to the savepoint, so no partial write survives.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.users = PgUserRepo(session)
        self.courses = PgCourseRepo(session)
        self.enrollments = PgEnrollmentRepo(session)
        self.records = PgLearningRecordRepo(session)

    @translate_store_errors
    async def _lock_enrollment(self, enrollment_id: UUID) -> None:
        stmt = (
            select(EnrollmentRow.id)
            .where(EnrollmentRow.id == enrollment_id)
            .with_for_update()
        )
        await self._session.execute(stmt)

    @asynccontextmanager
    async def enrollment_scope(self, enrollment_id: UUID) -> AsyncIterator[None]:
        async with self._session.begin_nested():
            await self._lock_enrollment(enrollment_id)
            yield
