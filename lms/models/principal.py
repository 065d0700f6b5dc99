from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

ROLE_ADMIN = "admin"
ROLE_LEARNER = "learner"
ROLES = frozenset({ROLE_ADMIN, ROLE_LEARNER})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a verified bearer token.

    Issued by the external identity provider; this service only reads it.
    Endpoints and services receive this instead of a raw token or user id.

        user_id: token subject
        role: admin|learner
    """

    user_id: UUID
    role: str

    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def is_learner(self) -> bool:
        return self.role == ROLE_LEARNER
