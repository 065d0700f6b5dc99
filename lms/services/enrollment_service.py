"""Enrollment lifecycle: assignment, progress, completion, cancellation.

State machine
-------------

    assigned ──start──▶ in_progress ──complete──▶ completed
        │                    │
        └──────cancel────────┴──────▶ cancelled

  - start:    assigned → in_progress, stamps started_at
  - complete: in_progress → completed, only at progress 100, stamps
              completed_at
  - cancel:   admin only, from any non-terminal status

completed and cancelled are terminal for everyone.  Recording progress
drives the machine: the first progress on an assigned enrollment starts
it, and progress reaching 100 completes it.  A completed enrollment stays
at 100 for good.

Learners move their own enrollments along the table above and nothing
else.  Admins may also set status, timestamps and due_date directly, but
their writes must still leave the enrollment satisfying its invariants;
anything that would not is rejected with InvalidTransition rather than
silently corrected.

The pure transition functions (start, complete, cancel, apply_progress)
take an injected ``now`` and return a new Enrollment; only the async
operations below them touch the store.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import replace
from uuid import UUID

from lms.core.errors import (
    DuplicateEnrollment,
    Forbidden,
    HasDependentRecords,
    InactiveCourse,
    InvalidLearner,
    InvalidTransition,
    NotFound,
)
from lms.core.metrics import ENROLLMENT_TRANSITIONS
from lms.models.enrollment import (
    ASSIGNED,
    CANCELLED,
    COMPLETED,
    IN_PROGRESS,
    STATUSES,
    Enrollment,
)
from lms.models.principal import Principal
from lms.repos.store import Store
from lms.services.access_guard import ensure_access, ensure_admin
from lms.services.clock import as_utc, utc_now

logger = logging.getLogger(__name__)

# Status changes a learner may request for their own enrollment.
LEARNER_TRANSITIONS = frozenset({(ASSIGNED, IN_PROGRESS), (IN_PROGRESS, COMPLETED)})

# Status changes an admin may write directly.  Nothing leaves a terminal
# status and nothing goes back to assigned.
ADMIN_TRANSITIONS: dict[str, frozenset[str]] = {
    ASSIGNED: frozenset({IN_PROGRESS, COMPLETED, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------


def _check_progress(value: int) -> None:
    if not 0 <= value <= 100:
        raise InvalidTransition("progress_percentage must be between 0 and 100")


def start(enrollment: Enrollment, now: dt.datetime) -> Enrollment:
    if enrollment.status != ASSIGNED:
        raise InvalidTransition(f"cannot start a {enrollment.status} enrollment")
    return replace(enrollment, status=IN_PROGRESS, started_at=now)


def complete(enrollment: Enrollment, now: dt.datetime) -> Enrollment:
    if enrollment.status != IN_PROGRESS:
        raise InvalidTransition(f"cannot complete a {enrollment.status} enrollment")
    if enrollment.progress_percentage != 100:
        raise InvalidTransition("an enrollment completes only at 100% progress")
    return replace(enrollment, status=COMPLETED, completed_at=now)


def cancel(enrollment: Enrollment, principal: Principal) -> Enrollment:
    ensure_admin(principal, action="cancel an enrollment")
    if enrollment.is_terminal:
        raise InvalidTransition(f"cannot cancel a {enrollment.status} enrollment")
    return replace(enrollment, status=CANCELLED)


def apply_progress(
    enrollment: Enrollment,
    new_progress: int,
    principal: Principal,
    now: dt.datetime,
) -> Enrollment:
    """Record progress and advance the state machine as far as it goes.

    assigned auto-starts, reaching 100 auto-completes (so an assigned
    enrollment can pass through in_progress to completed in one call).
    Reporting 100 again on a completed enrollment is a no-op.
    """
    ensure_access(principal, enrollment.learner_id, action="update an enrollment")
    _check_progress(new_progress)

    if enrollment.status == CANCELLED:
        raise InvalidTransition("cannot record progress on a cancelled enrollment")
    if enrollment.status == COMPLETED:
        if new_progress == 100:
            return enrollment
        raise InvalidTransition("a completed enrollment stays at 100% progress")

    if enrollment.status == ASSIGNED:
        enrollment = start(enrollment, now)
    enrollment = replace(enrollment, progress_percentage=new_progress)
    if new_progress == 100:
        enrollment = complete(enrollment, now)
    return enrollment


# ---------------------------------------------------------------------------
# Requested changes (PATCH)
# ---------------------------------------------------------------------------


def _learner_update(
    enrollment: Enrollment,
    principal: Principal,
    now: dt.datetime,
    *,
    status: str | None,
    progress: int | None,
) -> Enrollment:
    if status is not None and status != enrollment.status:
        if (enrollment.status, status) not in LEARNER_TRANSITIONS:
            raise InvalidTransition(
                f"cannot move an enrollment from {enrollment.status} to {status}"
            )

    updated = enrollment
    if progress is not None:
        updated = apply_progress(updated, progress, principal, now)
    if status == IN_PROGRESS and updated.status == ASSIGNED:
        updated = start(updated, now)
    if status == COMPLETED and updated.status == IN_PROGRESS:
        updated = complete(updated, now)
    return updated


def _admin_update(
    enrollment: Enrollment,
    principal: Principal,
    now: dt.datetime,
    *,
    status: str | None,
    progress: int | None,
    due_date: dt.date | None,
    started_at: dt.datetime | None,
    completed_at: dt.datetime | None,
) -> Enrollment:
    if progress is not None:
        _check_progress(progress)

    if enrollment.is_terminal:
        changes_state = (
            (status is not None and status != enrollment.status)
            or (progress is not None and progress != enrollment.progress_percentage)
            or started_at is not None
            or completed_at is not None
        )
        if changes_state:
            raise InvalidTransition(
                f"a {enrollment.status} enrollment can no longer change state"
            )
        if due_date is not None:
            return replace(enrollment, due_date=due_date)
        return enrollment

    if status is not None and status != enrollment.status:
        if status not in ADMIN_TRANSITIONS[enrollment.status]:
            raise InvalidTransition(
                f"cannot move an enrollment from {enrollment.status} to {status}"
            )

    target = status or enrollment.status
    new_progress = enrollment.progress_percentage if progress is None else progress
    # A bare progress write to 100 completes, as it does for learners.
    if status is None and progress == 100:
        target = COMPLETED

    updated = replace(
        enrollment,
        progress_percentage=new_progress,
        due_date=due_date or enrollment.due_date,
    )

    if target == ASSIGNED:
        if started_at is not None or completed_at is not None:
            raise InvalidTransition("an assigned enrollment has no start or end time")
        return updated

    if completed_at is not None and target != COMPLETED:
        raise InvalidTransition("completed_at is only set on completed enrollments")

    started = started_at or enrollment.started_at
    if target == CANCELLED:
        # A never-started enrollment stays never-started when cancelled.
        if enrollment.status == ASSIGNED and started_at is not None:
            raise InvalidTransition("a cancelled assignment was never started")
        return cancel(replace(updated, started_at=started), principal)

    started = started or now
    if target == IN_PROGRESS:
        return replace(updated, status=IN_PROGRESS, started_at=started)

    # COMPLETED
    if new_progress != 100:
        raise InvalidTransition("a completed enrollment must be at 100% progress")
    finished = completed_at or now
    if finished < started:
        raise InvalidTransition("completed_at is before started_at")
    return replace(updated, status=COMPLETED, started_at=started, completed_at=finished)


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


async def save_enrollment(
    store: Store, before: Enrollment, after: Enrollment, now: dt.datetime
) -> Enrollment:
    """Persist ``after`` if it differs from ``before``; bump version."""
    if after == before:
        return before
    saved = replace(after, version=before.version + 1, updated_at=now)
    await store.enrollments.put(saved)

    if saved.status != before.status:
        ENROLLMENT_TRANSITIONS.labels(
            from_status=before.status, to_status=saved.status
        ).inc()
        logger.info(
            "Enrollment %s: %s -> %s (progress=%d)",
            saved.id,
            before.status,
            saved.status,
            saved.progress_percentage,
            extra={"enrollment_id": str(saved.id)},
        )
    return saved


async def create_enrollment(
    store: Store,
    principal: Principal,
    *,
    learner_id: UUID,
    course_id: UUID,
    due_date: dt.date | None = None,
    now: dt.datetime | None = None,
) -> Enrollment:
    ensure_admin(principal, action="assign a course")
    now = as_utc(now) if now else utc_now()

    learner = await store.users.get_by_id(learner_id)
    if learner is None:
        raise NotFound(f"user {learner_id} not found")
    if not learner.is_learner() or not learner.is_active:
        raise InvalidLearner(f"user {learner_id} is not an active learner")

    course = await store.courses.get_by_id(course_id)
    if course is None:
        raise NotFound(f"course {course_id} not found")
    if not course.is_active:
        raise InactiveCourse(f"course {course_id} is not active")

    if await store.enrollments.find(learner_id, course_id) is not None:
        logger.warning(
            "Rejected duplicate enrollment learner=%s course=%s", learner_id, course_id
        )
        raise DuplicateEnrollment("learner is already enrolled in this course")

    enrollment = Enrollment.new(
        learner_id=learner_id,
        course_id=course_id,
        assigned_at=now,
        due_date=due_date,
        assigned_by=principal.user_id,
    )
    await store.enrollments.put(enrollment)
    logger.info(
        "Assigned course=%s to learner=%s",
        course_id,
        learner_id,
        extra={"enrollment_id": str(enrollment.id)},
    )
    return enrollment


async def update_enrollment_progress(
    store: Store,
    enrollment_id: UUID,
    principal: Principal,
    *,
    status: str | None = None,
    progress: int | None = None,
    due_date: dt.date | None = None,
    started_at: dt.datetime | None = None,
    completed_at: dt.datetime | None = None,
    now: dt.datetime | None = None,
) -> Enrollment:
    if status is not None and status not in STATUSES:
        raise InvalidTransition(f"unknown status {status!r}")
    now = as_utc(now) if now else utc_now()

    async with store.enrollment_scope(enrollment_id):
        enrollment = await store.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFound(f"enrollment {enrollment_id} not found")
        ensure_access(principal, enrollment.learner_id, action="update an enrollment")

        if principal.is_admin():
            updated = _admin_update(
                enrollment,
                principal,
                now,
                status=status,
                progress=progress,
                due_date=due_date,
                started_at=as_utc(started_at) if started_at else None,
                completed_at=as_utc(completed_at) if completed_at else None,
            )
        else:
            if due_date is not None or started_at is not None or completed_at is not None:
                logger.warning(
                    "Access denied: learner=%s tried to set admin-only enrollment fields",
                    principal.user_id,
                )
                raise Forbidden("only administrators may set due_date or timestamps")
            updated = _learner_update(
                enrollment, principal, now, status=status, progress=progress
            )

        return await save_enrollment(store, enrollment, updated, now)


async def delete_enrollment(
    store: Store, enrollment_id: UUID, principal: Principal
) -> None:
    ensure_admin(principal, action="delete an enrollment")

    async with store.enrollment_scope(enrollment_id):
        enrollment = await store.enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFound(f"enrollment {enrollment_id} not found")
        count = await store.records.count_by_enrollment(enrollment_id)
        if count > 0:
            raise HasDependentRecords(
                f"enrollment has {count} learning record(s); delete them first"
            )
        await store.enrollments.delete(enrollment_id)

    logger.info("Deleted enrollment", extra={"enrollment_id": str(enrollment_id)})


async def get_enrollment(
    store: Store, enrollment_id: UUID, principal: Principal
) -> Enrollment:
    enrollment = await store.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFound(f"enrollment {enrollment_id} not found")
    ensure_access(principal, enrollment.learner_id, action="read an enrollment")
    return enrollment


async def list_enrollments(
    store: Store,
    principal: Principal,
    *,
    learner_id: UUID | None = None,
    course_id: UUID | None = None,
    status: str | None = None,
) -> list[Enrollment]:
    """Enrollments visible to the principal, newest assignment first."""
    if learner_id is not None:
        ensure_access(principal, learner_id, action="list enrollments")

    if principal.is_admin():
        if learner_id is not None:
            items = await store.enrollments.list_by_learner(learner_id)
        else:
            items = await store.enrollments.list_all()
    else:
        items = await store.enrollments.list_by_learner(principal.user_id)

    if course_id is not None:
        items = [e for e in items if e.course_id == course_id]
    if status is not None:
        items = [e for e in items if e.status == status]
    return sorted(items, key=lambda e: e.assigned_at, reverse=True)
