"""Acting identity propagated into every mutating operation."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ActorRole(str, Enum):
    """Roles understood by the authorization boundary."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    STAFF = "staff"
    ADMIN = "admin"


class ActorContext(BaseModel):
    """
    Who is acting, and from where.

    Built by the service layer from the authenticated request and required
    by every create, cancel, reschedule and status-change operation so that
    StatusEvent and audit rows are always attributed.
    """

    user_id: int | None = Field(None, description="Authenticated user id")
    role: ActorRole = ActorRole.PATIENT
    request_id: str | None = Field(None, max_length=100)
    ip_address: str | None = Field(None, max_length=64)
    user_agent: str | None = Field(None, max_length=500)

    model_config = ConfigDict(frozen=True)

    @property
    def is_privileged(self) -> bool:
        """Staff and admins may act on any patient or doctor."""
        return self.role in (ActorRole.STAFF, ActorRole.ADMIN)
