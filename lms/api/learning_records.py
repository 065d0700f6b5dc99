"""Learning record endpoints.

  POST   /v1/learning-records          log a study session (idempotent by key)
  GET    /v1/learning-records          list, newest session first
  GET    /v1/learning-records/{id}
  PATCH  /v1/learning-records/{id}     same-day edit (admins: any day)
  DELETE /v1/learning-records/{id}     same-day delete (admins: any day)

Every write invalidates the cached summary of the record's enrollment.
"""

from __future__ import annotations

import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from lms.api.dependencies import get_store, require_user
from lms.models.learning_record import LearningRecord
from lms.models.principal import Principal
from lms.repos.store import Store
from lms.services import learning_record_service
from lms.services.cache import cache_service, summary_key
from lms.services.learning_record_service import LearningRecordPatch, NewLearningRecord

router = APIRouter(prefix="/v1/learning-records", tags=["learning-records"])

MAX_SESSION_MINUTES = 24 * 60


class LearningRecordIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enrollment_id: UUID
    course_id: UUID
    # Defaults to the caller; admins logging for a learner must set it.
    learner_id: UUID | None = None
    session_start_time: datetime.datetime
    session_end_time: datetime.datetime | None = None
    session_duration_minutes: int | None = Field(
        default=None, ge=1, le=MAX_SESSION_MINUTES
    )
    progress_percentage: int | None = Field(default=None, ge=0, le=100)
    understanding_level: int | None = Field(default=None, ge=1, le=5)
    learning_memo: str | None = Field(default=None, max_length=1000)
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=128)


class LearningRecordUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_end_time: datetime.datetime | None = None
    session_duration_minutes: int | None = Field(
        default=None, ge=1, le=MAX_SESSION_MINUTES
    )
    progress_percentage: int | None = Field(default=None, ge=0, le=100)
    understanding_level: int | None = Field(default=None, ge=1, le=5)
    learning_memo: str | None = Field(default=None, max_length=1000)


class LearningRecordOut(BaseModel):
    id: UUID
    enrollment_id: UUID
    course_id: UUID
    learner_id: UUID
    session_start_time: datetime.datetime
    session_end_time: datetime.datetime | None
    session_duration_minutes: int | None
    session_date: datetime.date
    progress_percentage: int | None
    understanding_level: int | None
    learning_memo: str | None
    cumulative_learning_minutes: int
    created_at: datetime.datetime
    updated_at: datetime.datetime | None

    @staticmethod
    def of(r: LearningRecord) -> LearningRecordOut:
        return LearningRecordOut(
            id=r.id,
            enrollment_id=r.enrollment_id,
            course_id=r.course_id,
            learner_id=r.learner_id,
            session_start_time=r.session_start_time,
            session_end_time=r.session_end_time,
            session_duration_minutes=r.session_duration_minutes,
            session_date=r.session_date,
            progress_percentage=r.progress_percentage,
            understanding_level=r.understanding_level,
            learning_memo=r.learning_memo,
            cumulative_learning_minutes=r.cumulative_learning_minutes,
            created_at=r.created_at,
            updated_at=r.updated_at,
        )


@router.post("", response_model=LearningRecordOut, status_code=status.HTTP_201_CREATED)
async def record_learning_session(
    body: LearningRecordIn,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> LearningRecordOut:
    fields = NewLearningRecord(
        enrollment_id=body.enrollment_id,
        course_id=body.course_id,
        learner_id=body.learner_id or principal.user_id,
        session_start_time=body.session_start_time,
        session_end_time=body.session_end_time,
        session_duration_minutes=body.session_duration_minutes,
        progress_percentage=body.progress_percentage,
        understanding_level=body.understanding_level,
        learning_memo=body.learning_memo,
        idempotency_key=body.idempotency_key,
    )
    record = await learning_record_service.create_learning_record(store, fields, principal)
    await cache_service.delete(summary_key(record.enrollment_id))
    return LearningRecordOut.of(record)


@router.get("", response_model=list[LearningRecordOut])
async def list_learning_records(
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
    learner_id: UUID | None = None,
    enrollment_id: UUID | None = None,
    course_id: UUID | None = None,
    date_from: datetime.date | None = None,
    date_to: datetime.date | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[LearningRecordOut]:
    items = await learning_record_service.list_learning_records(
        store,
        principal,
        learner_id=learner_id,
        enrollment_id=enrollment_id,
        course_id=course_id,
        date_from=date_from,
        date_to=date_to,
    )
    return [LearningRecordOut.of(r) for r in items[offset : offset + limit]]


@router.get("/{record_id}", response_model=LearningRecordOut)
async def get_learning_record(
    record_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> LearningRecordOut:
    record = await learning_record_service.get_learning_record(store, record_id, principal)
    return LearningRecordOut.of(record)


@router.patch("/{record_id}", response_model=LearningRecordOut)
async def update_learning_record(
    record_id: UUID,
    body: LearningRecordUpdateIn,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> LearningRecordOut:
    patch = LearningRecordPatch(
        session_end_time=body.session_end_time,
        session_duration_minutes=body.session_duration_minutes,
        progress_percentage=body.progress_percentage,
        understanding_level=body.understanding_level,
        learning_memo=body.learning_memo,
    )
    record = await learning_record_service.update_learning_record(
        store, record_id, patch, principal
    )
    await cache_service.delete(summary_key(record.enrollment_id))
    return LearningRecordOut.of(record)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_learning_record(
    record_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> Response:
    record = await learning_record_service.delete_learning_record(
        store, record_id, principal
    )
    await cache_service.delete(summary_key(record.enrollment_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
