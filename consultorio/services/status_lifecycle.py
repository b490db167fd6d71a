"""Appointment status state machine."""

from consultorio.core.exceptions import ConflictException
from consultorio.schemas.appointments import TERMINAL_STATUSES, AppointmentStatus

_FROM_ACTIVE = frozenset(
    {
        AppointmentStatus.CANCELED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.ATTENDED,
        AppointmentStatus.NO_SHOW,
    }
)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.CONFIRMED: _FROM_ACTIVE,
    # RESCHEDULED -> RESCHEDULED moves the booking again without a status change
    AppointmentStatus.RESCHEDULED: _FROM_ACTIVE,
    AppointmentStatus.CANCELED: frozenset(),
    AppointmentStatus.ATTENDED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """Return True if ``current -> target`` is a legal lifecycle step."""
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    """
    Validate a lifecycle step.

    Raises:
        ConflictException: If the appointment is terminal or the step is not allowed
    """
    if current in TERMINAL_STATUSES:
        raise ConflictException(
            f"Appointment is {current.value}, a terminal status; "
            f"it cannot move to {target.value}"
        )
    if not can_transition(current, target):
        raise ConflictException(
            f"Status transition {current.value} -> {target.value} is not allowed"
        )


def is_status_change(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """A step produces a StatusEvent only when the status value actually changes."""
    return current != target
