"""Typed business-rule errors.

Services raise these; the HTTP layer maps them to responses through one
exception handler (see lms.main), using the status_code carried by each
class.  Nothing in the core retries on any of them.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for every error the core returns to its callers."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFound(DomainError):
    status_code = 404


class Forbidden(DomainError):
    status_code = 403


class NotOwner(Forbidden):
    """A learner acted on an enrollment or record owned by someone else."""


class InvalidTransition(DomainError):
    pass


class StaleEditWindow(DomainError):
    pass


class InvalidDuration(DomainError):
    pass


class InactiveCourse(DomainError):
    pass


class CancelledEnrollment(DomainError):
    pass


class InvalidLearner(DomainError):
    """The enrollment target is not a user with the learner role."""


class DuplicateEnrollment(DomainError):
    status_code = 409


class HasDependentRecords(DomainError):
    status_code = 409


class IdempotencyConflict(DomainError):
    """An idempotency key was reused with a different payload."""

    status_code = 409


class StoreConflict(DomainError):
    """Optimistic version check failed: the row changed under the writer."""

    status_code = 409


class StoreUnavailable(DomainError):
    """Transient storage failure; the caller may retry with backoff."""

    status_code = 503
