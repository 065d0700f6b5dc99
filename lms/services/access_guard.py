"""Resource-scoped authorization.

One place decides who may touch what, so no endpoint or service carries
its own ``if admin ... else ...`` branch.  The rule is always the same:

  - admins may access every enrollment, record and course;
  - a learner may access what is owned by (learner_id ==) their user id,
    and a course only while enrolled in it.

The ``can_*`` functions answer yes/no and never raise: a failed lookup
counts as "no" (fail closed).  The ``ensure_*`` functions raise the typed
errors the HTTP layer turns into 403s.  Decisions are made per call and
never cached; roles and enrollments change between requests.
"""

from __future__ import annotations

import logging
from uuid import UUID

from lms.core.errors import Forbidden, NotOwner
from lms.models.principal import Principal
from lms.repos.enrollment_repo import EnrollmentRepo
from lms.repos.learning_record_repo import LearningRecordRepo

logger = logging.getLogger(__name__)


def can_access(principal: Principal, resource_owner_id: UUID) -> bool:
    if principal.is_admin():
        return True
    return principal.user_id == resource_owner_id


async def can_access_course(
    principal: Principal, course_id: UUID, enrollments: EnrollmentRepo
) -> bool:
    if principal.is_admin():
        return True
    try:
        enrollment = await enrollments.find(principal.user_id, course_id)
    except Exception:
        logger.warning(
            "Course access lookup failed for user=%s course=%s; denying",
            principal.user_id,
            course_id,
            exc_info=True,
        )
        return False
    return enrollment is not None


async def can_access_record(
    principal: Principal, record_id: UUID, records: LearningRecordRepo
) -> bool:
    if principal.is_admin():
        return True
    try:
        record = await records.get(record_id)
    except Exception:
        logger.warning(
            "Record access lookup failed for user=%s record=%s; denying",
            principal.user_id,
            record_id,
            exc_info=True,
        )
        return False
    return record is not None and record.learner_id == principal.user_id


def ensure_access(principal: Principal, resource_owner_id: UUID, *, action: str) -> None:
    if not can_access(principal, resource_owner_id):
        logger.warning(
            "Access denied: user=%s may not %s owned by %s",
            principal.user_id,
            action,
            resource_owner_id,
        )
        raise NotOwner(f"not allowed to {action} belonging to another learner")


def ensure_admin(principal: Principal, *, action: str) -> None:
    if not principal.is_admin():
        logger.warning(
            "Access denied: user=%s role=%s may not %s",
            principal.user_id,
            principal.role,
            action,
        )
        raise Forbidden(f"administrator role required to {action}")
