from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

# Roles that may manage content and view aggregate statistics.
STAFF_ROLES = frozenset({"Admin", "Instructor", "Staff"})


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated identity-provider JWT.

    Carried through the request via FastAPI's dependency system.

        user_id: `sub` claim, the profile id in the backing store
        roles:   application roles (Student, Instructor, Admin, Staff)
        email / name: optional claims used when provisioning a profile
    """

    user_id: str
    roles: frozenset[str]
    email: str | None = None
    name: str | None = None

    @property
    def user_uuid(self) -> UUID:
        return UUID(self.user_id)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str] | frozenset[str]) -> bool:
        return bool(self.roles & roles)

    def is_staff(self) -> bool:
        return self.has_any_role(STAFF_ROLES)
