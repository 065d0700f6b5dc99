from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Course:
    """Read-only view of a course; only is_active takes part in the rules."""

    id: UUID
    title: str
    is_active: bool = True

    @staticmethod
    def new(*, title: str, is_active: bool = True) -> Course:
        return Course(id=uuid4(), title=title, is_active=is_active)
