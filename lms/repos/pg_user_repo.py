"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import UserRow
from lms.models.user import User
from lms.repos.pg_errors import translate_store_errors


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @translate_store_errors
    async def get_by_id(self, user_id: UUID) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    @translate_store_errors
    async def add(self, user: User) -> None:
        row = UserRow(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            department=user.department,
            is_active=user.is_active,
        )
        self._session.add(row)
        await self._session.flush()


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        role=row.role,
        name=row.name or "",
        department=row.department,
        is_active=row.is_active,
    )
