"""Learning records: logged study sessions and their running totals.

Write path for one session (RecordLearningSession):

  1. ownership: learners log only for themselves
  2. derive the duration from start/end when it was not given
  3. inside the enrollment's scope (exclusive, all-or-nothing):
       - replay a prior submission with the same idempotency key
       - enrollment must exist, belong to the learner, and not be cancelled
       - course must be active
       - cumulative_learning_minutes = sum of the other records + this one
       - insert, then re-stamp the chronologically latest record
       - feed progress into the enrollment state machine

Every create, update and delete ends with the same reconciliation: the
latest record of the enrollment (by session_start_time, then created_at,
then id) carries the enrollment's total minutes.  Records that are not
latest keep the total as of when they were written.

Learners may edit or delete a record only on the calendar day (service
time zone) it was created; admins any time.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from uuid import UUID

from lms.core.errors import (
    CancelledEnrollment,
    Forbidden,
    IdempotencyConflict,
    InactiveCourse,
    InvalidDuration,
    NotFound,
    StaleEditWindow,
)
from lms.core.metrics import LEARNING_RECORD_OPERATIONS
from lms.models.enrollment import CANCELLED, Enrollment
from lms.models.learning_record import LearningRecord
from lms.models.principal import Principal
from lms.repos.store import Store
from lms.services.access_guard import can_access_record, ensure_access
from lms.services.clock import (
    as_utc,
    local_date,
    same_local_day,
    session_minutes,
    utc_now,
)
from lms.services.enrollment_service import apply_progress, save_enrollment

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NewLearningRecord:
    enrollment_id: UUID
    course_id: UUID
    learner_id: UUID
    session_start_time: dt.datetime
    session_end_time: dt.datetime | None = None
    session_duration_minutes: int | None = None
    progress_percentage: int | None = None
    understanding_level: int | None = None
    learning_memo: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True, slots=True)
class LearningRecordPatch:
    """Fields a record update may change; None leaves a field as it is."""

    session_end_time: dt.datetime | None = None
    session_duration_minutes: int | None = None
    progress_percentage: int | None = None
    understanding_level: int | None = None
    learning_memo: str | None = None


@dataclass(frozen=True, slots=True)
class EnrollmentSummary:
    enrollment_id: UUID
    status: str
    progress_percentage: int
    record_count: int
    total_minutes: int
    latest_session_date: dt.date | None


# ---------------------------------------------------------------------------
# Aggregation helpers
# ---------------------------------------------------------------------------


def _chronological_key(record: LearningRecord) -> tuple:
    return (as_utc(record.session_start_time), as_utc(record.created_at), str(record.id))


def latest_record(records: Iterable[LearningRecord]) -> LearningRecord | None:
    return max(records, key=_chronological_key, default=None)


def total_minutes(records: Iterable[LearningRecord]) -> int:
    return sum(r.minutes for r in records)


async def _reconcile_latest(store: Store, records: list[LearningRecord]) -> None:
    """Make the latest record carry the enrollment total."""
    latest = latest_record(records)
    if latest is None:
        return
    total = total_minutes(records)
    if latest.cumulative_learning_minutes != total:
        await store.records.put(replace(latest, cumulative_learning_minutes=total))


def _resolve_duration(
    start: dt.datetime, end: dt.datetime | None, duration: int | None
) -> int | None:
    if duration is not None and duration < 0:
        raise InvalidDuration("session_duration_minutes must not be negative")
    if end is None:
        return duration
    if end < start:
        raise InvalidDuration("session_end_time is before session_start_time")
    if duration is None:
        return session_minutes(start, end)
    return duration


def _ensure_edit_window(
    principal: Principal,
    record: LearningRecord,
    now: dt.datetime,
    tz: dt.tzinfo | None,
) -> None:
    if principal.is_admin():
        return
    if not same_local_day(record.created_at, now, tz):
        logger.warning(
            "Rejected edit of record=%s created %s by learner=%s",
            record.id,
            record.created_at.isoformat(),
            principal.user_id,
        )
        raise StaleEditWindow(
            "learning records can only be changed on the day they were created"
        )


def _same_submission(
    existing: LearningRecord, fields: NewLearningRecord, duration: int | None
) -> bool:
    return (
        existing.enrollment_id == fields.enrollment_id
        and existing.course_id == fields.course_id
        and as_utc(existing.session_start_time) == as_utc(fields.session_start_time)
        and _opt_utc(existing.session_end_time) == _opt_utc(fields.session_end_time)
        and existing.session_duration_minutes == duration
        and existing.progress_percentage == fields.progress_percentage
        and existing.understanding_level == fields.understanding_level
        and existing.learning_memo == fields.learning_memo
    )


def _opt_utc(value: dt.datetime | None) -> dt.datetime | None:
    return None if value is None else as_utc(value)


async def _feed_progress(
    store: Store,
    enrollment: Enrollment,
    progress: int,
    principal: Principal,
    now: dt.datetime,
) -> None:
    updated = apply_progress(enrollment, progress, principal, now)
    await save_enrollment(store, enrollment, updated, now)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def create_learning_record(
    store: Store,
    fields: NewLearningRecord,
    principal: Principal,
    *,
    now: dt.datetime | None = None,
    tz: dt.tzinfo | None = None,
) -> LearningRecord:
    ensure_access(principal, fields.learner_id, action="log a session")
    now = as_utc(now) if now else utc_now()

    start = as_utc(fields.session_start_time)
    end = _opt_utc(fields.session_end_time)
    duration = _resolve_duration(start, end, fields.session_duration_minutes)

    async with store.enrollment_scope(fields.enrollment_id):
        if fields.idempotency_key:
            existing = await store.records.find_by_idempotency_key(
                fields.learner_id, fields.idempotency_key
            )
            if existing is not None:
                if not _same_submission(existing, fields, duration):
                    logger.warning(
                        "Idempotency key reused with a different payload: learner=%s key=%s",
                        fields.learner_id,
                        fields.idempotency_key,
                    )
                    raise IdempotencyConflict(
                        "idempotency key reuse with a different request payload"
                    )
                LEARNING_RECORD_OPERATIONS.labels(operation="replay").inc()
                return existing

        enrollment = await store.enrollments.get(fields.enrollment_id)
        if (
            enrollment is None
            or enrollment.learner_id != fields.learner_id
            or enrollment.course_id != fields.course_id
        ):
            raise NotFound("no enrollment for this learner and course")
        if enrollment.status == CANCELLED:
            raise CancelledEnrollment("cannot log a session on a cancelled enrollment")

        course = await store.courses.get_by_id(fields.course_id)
        if course is None:
            raise NotFound(f"course {fields.course_id} not found")
        if not course.is_active:
            raise InactiveCourse(f"course {fields.course_id} is not active")

        siblings = await store.records.list_by_enrollment(fields.enrollment_id)
        record = LearningRecord.new(
            enrollment_id=fields.enrollment_id,
            course_id=fields.course_id,
            learner_id=fields.learner_id,
            session_start_time=start,
            session_date=local_date(start, tz),
            created_at=now,
            session_end_time=end,
            session_duration_minutes=duration,
            progress_percentage=fields.progress_percentage,
            understanding_level=fields.understanding_level,
            learning_memo=fields.learning_memo,
            idempotency_key=fields.idempotency_key,
        )
        record = replace(
            record, cumulative_learning_minutes=total_minutes(siblings) + record.minutes
        )
        await store.records.put(record)
        await _reconcile_latest(store, [*siblings, record])

        if fields.progress_percentage is not None:
            await _feed_progress(
                store, enrollment, fields.progress_percentage, principal, now
            )

    LEARNING_RECORD_OPERATIONS.labels(operation="create").inc()
    logger.info(
        "Logged %d minute(s) for learner=%s",
        record.minutes,
        record.learner_id,
        extra={"enrollment_id": str(record.enrollment_id), "record_id": str(record.id)},
    )
    return record


async def update_learning_record(
    store: Store,
    record_id: UUID,
    patch: LearningRecordPatch,
    principal: Principal,
    *,
    now: dt.datetime | None = None,
    tz: dt.tzinfo | None = None,
) -> LearningRecord:
    now = as_utc(now) if now else utc_now()
    found = await store.records.get(record_id)
    if found is None:
        raise NotFound(f"learning record {record_id} not found")

    async with store.enrollment_scope(found.enrollment_id):
        record = await store.records.get(record_id)
        if record is None:
            raise NotFound(f"learning record {record_id} not found")
        ensure_access(principal, record.learner_id, action="edit a learning record")
        _ensure_edit_window(principal, record, now, tz)

        end = _opt_utc(patch.session_end_time)
        duration = _resolve_duration(
            as_utc(record.session_start_time), end, patch.session_duration_minutes
        )

        updated = replace(record, updated_at=now)
        if end is not None:
            updated = replace(updated, session_end_time=end)
        if duration is not None:
            updated = replace(updated, session_duration_minutes=duration)
        if patch.progress_percentage is not None:
            updated = replace(updated, progress_percentage=patch.progress_percentage)
        if patch.understanding_level is not None:
            updated = replace(updated, understanding_level=patch.understanding_level)
        if patch.learning_memo is not None:
            updated = replace(updated, learning_memo=patch.learning_memo)

        others = [
            r
            for r in await store.records.list_by_enrollment(record.enrollment_id)
            if r.id != record.id
        ]
        if duration is not None and duration != record.session_duration_minutes:
            updated = replace(
                updated,
                cumulative_learning_minutes=total_minutes(others) + updated.minutes,
            )
        await store.records.put(updated)
        await _reconcile_latest(store, [*others, updated])
        # Reconciliation may have re-stamped this record.
        updated = await store.records.get(record_id) or updated

        if patch.progress_percentage is not None:
            enrollment = await store.enrollments.get(record.enrollment_id)
            if enrollment is None:
                raise NotFound(f"enrollment {record.enrollment_id} not found")
            await _feed_progress(
                store, enrollment, patch.progress_percentage, principal, now
            )

    LEARNING_RECORD_OPERATIONS.labels(operation="update").inc()
    logger.info(
        "Updated learning record",
        extra={"enrollment_id": str(updated.enrollment_id), "record_id": str(updated.id)},
    )
    return updated


async def delete_learning_record(
    store: Store,
    record_id: UUID,
    principal: Principal,
    *,
    now: dt.datetime | None = None,
    tz: dt.tzinfo | None = None,
) -> LearningRecord:
    now = as_utc(now) if now else utc_now()
    found = await store.records.get(record_id)
    if found is None:
        raise NotFound(f"learning record {record_id} not found")

    async with store.enrollment_scope(found.enrollment_id):
        record = await store.records.get(record_id)
        if record is None:
            raise NotFound(f"learning record {record_id} not found")
        ensure_access(principal, record.learner_id, action="delete a learning record")
        _ensure_edit_window(principal, record, now, tz)

        await store.records.delete(record_id)
        remaining = await store.records.list_by_enrollment(record.enrollment_id)
        await _reconcile_latest(store, remaining)

    LEARNING_RECORD_OPERATIONS.labels(operation="delete").inc()
    logger.info(
        "Deleted learning record",
        extra={"enrollment_id": str(record.enrollment_id), "record_id": str(record.id)},
    )
    return record


async def get_learning_record(
    store: Store, record_id: UUID, principal: Principal
) -> LearningRecord:
    if not await can_access_record(principal, record_id, store.records):
        logger.warning(
            "Access denied: user=%s may not read record=%s", principal.user_id, record_id
        )
        raise Forbidden("not allowed to read this learning record")
    record = await store.records.get(record_id)
    if record is None:
        raise NotFound(f"learning record {record_id} not found")
    return record


async def list_learning_records(
    store: Store,
    principal: Principal,
    *,
    learner_id: UUID | None = None,
    enrollment_id: UUID | None = None,
    course_id: UUID | None = None,
    date_from: dt.date | None = None,
    date_to: dt.date | None = None,
) -> list[LearningRecord]:
    """Records visible to the principal, most recent session first."""
    if learner_id is not None:
        ensure_access(principal, learner_id, action="list learning records")
    if not principal.is_admin():
        learner_id = principal.user_id

    if learner_id is not None:
        items = await store.records.list_by_learner(learner_id)
    else:
        items = await store.records.list_all()

    if enrollment_id is not None:
        items = [r for r in items if r.enrollment_id == enrollment_id]
    if course_id is not None:
        items = [r for r in items if r.course_id == course_id]
    if date_from is not None:
        items = [r for r in items if r.session_date >= date_from]
    if date_to is not None:
        items = [r for r in items if r.session_date <= date_to]
    return sorted(items, key=_chronological_key, reverse=True)


async def summarize_enrollment(
    store: Store, enrollment_id: UUID, principal: Principal
) -> EnrollmentSummary:
    """Totals computed from the records themselves, not the stored running sum."""
    enrollment = await store.enrollments.get(enrollment_id)
    if enrollment is None:
        raise NotFound(f"enrollment {enrollment_id} not found")
    ensure_access(principal, enrollment.learner_id, action="read an enrollment")

    records = await store.records.list_by_enrollment(enrollment_id)
    latest = latest_record(records)
    return EnrollmentSummary(
        enrollment_id=enrollment.id,
        status=enrollment.status,
        progress_percentage=enrollment.progress_percentage,
        record_count=len(records),
        total_minutes=total_minutes(records),
        latest_session_date=None if latest is None else latest.session_date,
    )
