"""Request-scoped identity derived from the authorization context."""

from enum import StrEnum

from pydantic import BaseModel


class Role(StrEnum):
    """Roles assigned by the identity provider."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class IdentityContext(BaseModel):
    """Who is making the current request. Never persisted."""

    user_id: str
    email: str = ""
    role: str = Role.EMPLOYEE
    team_id: str | None = None
    department: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_manager_or_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.MANAGER)
