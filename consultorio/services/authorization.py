"""Authorization boundary between the HTTP layer and the booking core."""

from consultorio.core.exceptions import ForbiddenException, UnauthorizedException
from consultorio.schemas.appointments import AppointmentResponse
from consultorio.schemas.context import ActorContext, ActorRole


def require_actor(context: ActorContext, operation: str) -> int:
    """
    Return the acting user id, refusing unattributed privileged writes.

    Raises:
        UnauthorizedException: If the context carries no user id
    """
    if context.user_id is None:
        raise UnauthorizedException(f"An acting user is required to {operation}")
    return context.user_id


class AccessPolicy:
    """
    Ownership checks invoked before delegating to the core services.

    Patients act only on their own appointments, doctors only on their own
    schedule and bookings; staff and admins act on everything.
    """

    def __init__(self, context: ActorContext):
        """Initialize policy for an acting identity."""
        self.context = context

    def ensure_privileged(self) -> None:
        """Require a staff or admin role."""
        if not self.context.is_privileged:
            raise ForbiddenException("Staff or admin access required")

    def ensure_can_book_for(self, patient_user_id: int) -> None:
        """Patients may only book for themselves."""
        if self.context.is_privileged:
            return
        if self.context.role == ActorRole.PATIENT and self.context.user_id == patient_user_id:
            return
        raise ForbiddenException("Patients may only book appointments for themselves")

    def ensure_can_access_appointment(self, appointment: AppointmentResponse) -> None:
        """Only the owning patient, the attending doctor, staff or admins may act."""
        if self.context.is_privileged:
            return
        if (
            self.context.role == ActorRole.PATIENT
            and self.context.user_id == appointment.patient_user_id
        ):
            return
        if (
            self.context.role == ActorRole.DOCTOR
            and self.context.user_id == appointment.doctor_user_id
        ):
            return
        raise ForbiddenException("Access denied to this appointment")

    def ensure_can_record_outcome(self, appointment: AppointmentResponse) -> None:
        """Attendance outcomes are recorded by the attending doctor, staff or admins."""
        if self.context.is_privileged:
            return
        if (
            self.context.role == ActorRole.DOCTOR
            and self.context.user_id == appointment.doctor_user_id
        ):
            return
        raise ForbiddenException("Only the attending doctor or staff may record attendance")

    def ensure_can_manage_schedule(self, doctor_user_id: int) -> None:
        """Doctors manage only their own template and blocks."""
        if self.context.is_privileged:
            return
        if self.context.role == ActorRole.DOCTOR and self.context.user_id == doctor_user_id:
            return
        raise ForbiddenException("Doctors may only manage their own schedule")
