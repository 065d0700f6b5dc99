"""Course lookup for enrolled learners and admins.

  GET /v1/courses/{course_id}   admins always; learners only while enrolled
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from lms.api.dependencies import get_store, require_user
from lms.core.errors import Forbidden, NotFound
from lms.models.principal import Principal
from lms.repos.store import Store
from lms.services.access_guard import can_access_course

router = APIRouter(prefix="/v1/courses", tags=["courses"])


class CourseOut(BaseModel):
    id: UUID
    title: str
    is_active: bool


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    store: Annotated[Store, Depends(get_store)],
) -> CourseOut:
    if not await can_access_course(principal, course_id, store.enrollments):
        raise Forbidden("not enrolled in this course")
    course = await store.courses.get_by_id(course_id)
    if course is None:
        raise NotFound(f"course {course_id} not found")
    return CourseOut(id=course.id, title=course.title, is_active=course.is_active)
