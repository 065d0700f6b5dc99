"""Enrollment endpoints.

  POST   /v1/enrollments                 admin assigns a course to a learner
  GET    /v1/enrollments                 enrollments visible to the caller
  GET    /v1/enrollments/{id}            one enrollment (owner or admin)
  PATCH  /v1/enrollments/{id}            status/progress change, admin extras
  DELETE /v1/enrollments/{id}            admin, only without learning records
  GET    /v1/enrollments/{id}/summary    read-through cached totals

Business-rule failures surface as DomainError subclasses and are turned
into responses by the handler in lms.main.
"""

from __future__ import annotations

import datetime
import json
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field

from lms.api.dependencies import get_store, require_user
from lms.models.enrollment import Enrollment
from lms.models.principal import Principal
from lms.repos.store import Store
from lms.services import enrollment_service, learning_record_service
from lms.services.cache import SUMMARY_TTL_SECONDS, cache_service, summary_key

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])

Status = Literal["assigned", "in_progress", "completed", "cancelled"]


class EnrollmentCreateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    learner_id: UUID
    course_id: UUID
    due_date: datetime.date | None = None


class EnrollmentUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Status | None = None
    progress_percentage: int | None = Field(default=None, ge=0, le=100)
    # admin only
    due_date: datetime.date | None = None
    started_at: datetime.datetime | None = None
    completed_at: datetime.datetime | None = None


class EnrollmentOut(BaseModel):
    id: UUID
    learner_id: UUID
    course_id: UUID
    status: Status
    progress_percentage: int
    assigned_at: datetime.datetime
    started_at: datetime.datetime | None
    completed_at: datetime.datetime | None
    due_date: datetime.date | None
    assigned_by: UUID | None
    updated_at: datetime.datetime | None
    version: int

    @staticmethod
    def of(e: Enrollment) -> EnrollmentOut:
        return EnrollmentOut(
            id=e.id,
            learner_id=e.learner_id,
            course_id=e.course_id,
            status=e.status,  # type: ignore[arg-type]
            progress_percentage=e.progress_percentage,
            assigned_at=e.assigned_at,
            started_at=e.started_at,
            completed_at=e.completed_at,
            due_date=e.due_date,
            assigned_by=e.assigned_by,
            updated_at=e.updated_at,
            version=e.version,
        )


class EnrollmentSummaryOut(BaseModel):
    enrollment_id: UUID
    status: Status
    progress_percentage: int
    record_count: int
    total_minutes: int
    latest_session_date: datetime.date | None


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def create_enrollment(
    body: EnrollmentCreateIn,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> EnrollmentOut:
    enrollment = await enrollment_service.create_enrollment(
        store,
        principal,
        learner_id=body.learner_id,
        course_id=body.course_id,
        due_date=body.due_date,
    )
    return EnrollmentOut.of(enrollment)


@router.get("", response_model=list[EnrollmentOut])
async def list_enrollments(
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
    learner_id: UUID | None = None,
    course_id: UUID | None = None,
    status: Status | None = None,
) -> list[EnrollmentOut]:
    items = await enrollment_service.list_enrollments(
        store, principal, learner_id=learner_id, course_id=course_id, status=status
    )
    return [EnrollmentOut.of(e) for e in items]


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment(
    enrollment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> EnrollmentOut:
    enrollment = await enrollment_service.get_enrollment(store, enrollment_id, principal)
    return EnrollmentOut.of(enrollment)


@router.patch("/{enrollment_id}", response_model=EnrollmentOut)
async def update_enrollment(
    enrollment_id: UUID,
    body: EnrollmentUpdateIn,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> EnrollmentOut:
    enrollment = await enrollment_service.update_enrollment_progress(
        store,
        enrollment_id,
        principal,
        status=body.status,
        progress=body.progress_percentage,
        due_date=body.due_date,
        started_at=body.started_at,
        completed_at=body.completed_at,
    )
    await cache_service.delete(summary_key(enrollment_id))
    return EnrollmentOut.of(enrollment)


@router.delete("/{enrollment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_enrollment(
    enrollment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> Response:
    await enrollment_service.delete_enrollment(store, enrollment_id, principal)
    await cache_service.delete(summary_key(enrollment_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{enrollment_id}/summary", response_model=EnrollmentSummaryOut)
async def get_enrollment_summary(
    enrollment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> EnrollmentSummaryOut:
    """Read-through cached summary.

    The cache key is per enrollment, not per caller, so access is checked
    against the enrollment on every request, hit or miss.
    """
    enrollment = await enrollment_service.get_enrollment(store, enrollment_id, principal)

    key = summary_key(enrollment.id)
    cached = await cache_service.get(key)
    if cached is not None:
        return EnrollmentSummaryOut(**json.loads(cached))

    summary = await learning_record_service.summarize_enrollment(
        store, enrollment_id, principal
    )
    out = EnrollmentSummaryOut(
        enrollment_id=summary.enrollment_id,
        status=summary.status,  # type: ignore[arg-type]
        progress_percentage=summary.progress_percentage,
        record_count=summary.record_count,
        total_minutes=summary.total_minutes,
        latest_session_date=summary.latest_session_date,
    )
    await cache_service.set(key, out.model_dump_json(), SUMMARY_TTL_SECONDS)
    return out
