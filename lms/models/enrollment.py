from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID, uuid4

ASSIGNED = "assigned"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

STATUSES = (ASSIGNED, IN_PROGRESS, COMPLETED, CANCELLED)
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})


@dataclass(frozen=True, slots=True)
class Enrollment:
    """One learner's assignment to one course and its progress state.

    Invariants (enforced by services.enrollment_service):
      - started_at is set iff the enrollment reached in_progress
      - completed_at is set iff status == completed, and then progress == 100

    version increases on every persisted write; stores reject a put whose
    version is not exactly one past the stored row.
    """

    id: UUID
    learner_id: UUID
    course_id: UUID
    assigned_at: datetime
    status: str = ASSIGNED  # assigned|in_progress|completed|cancelled
    progress_percentage: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    due_date: date | None = None
    assigned_by: UUID | None = None
    updated_at: datetime | None = None
    version: int = 1

    @staticmethod
    def new(
        *,
        learner_id: UUID,
        course_id: UUID,
        assigned_at: datetime,
        due_date: date | None = None,
        assigned_by: UUID | None = None,
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            learner_id=learner_id,
            course_id=course_id,
            assigned_at=assigned_at,
            due_date=due_date,
            assigned_by=assigned_by,
            updated_at=assigned_at,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
