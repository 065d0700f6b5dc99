from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from lms.models.principal import ROLE_LEARNER


@dataclass(frozen=True, slots=True)
class User:
    """A person known to the service.

    Users are provisioned by the identity provider / user administration;
    this core only reads them (to check that an enrollment targets a learner).
    """

    id: UUID
    email: str
    role: str = ROLE_LEARNER  # admin|learner
    name: str = ""
    department: str | None = None
    is_active: bool = True

    @staticmethod
    def new(
        *,
        email: str,
        role: str = ROLE_LEARNER,
        name: str = "",
        department: str | None = None,
    ) -> User:
        return User(
            id=uuid4(),
            email=email.strip().lower(),
            role=role,
            name=name,
            department=department,
        )

    def is_learner(self) -> bool:
        return self.role == ROLE_LEARNER
