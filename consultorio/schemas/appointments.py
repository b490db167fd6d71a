"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"
    RESCHEDULED = "RESCHEDULED"
    ATTENDED = "ATTENDED"
    NO_SHOW = "NO_SHOW"


# Statuses that occupy a (doctor, date, slot) key
ACTIVE_STATUSES = frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED})

TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.CANCELED, AppointmentStatus.ATTENDED, AppointmentStatus.NO_SHOW}
)


class AppointmentCreate(BaseModel):
    """Schema for booking a new appointment."""

    patient_id: UUID = Field(..., description="Patient public id")
    doctor_id: UUID = Field(..., description="Doctor public id")
    specialty_id: int = Field(..., ge=1)
    appointment_date: date
    time_slot_id: int = Field(..., ge=1)
    notes: str | None = Field(None, max_length=2000)


class VersionedMutation(BaseModel):
    """Base for mutations guarded by optimistic concurrency."""

    version: int = Field(..., ge=1, description="Version the caller last observed")


class AppointmentCancel(VersionedMutation):
    """Schema for canceling an appointment."""

    reason: str | None = Field(None, min_length=3, max_length=500)


class AppointmentReschedule(VersionedMutation):
    """Schema for moving an appointment to another date and/or slot."""

    new_date: date
    new_time_slot_id: int = Field(..., ge=1)
    reason: str | None = Field(None, min_length=3, max_length=500)


class AppointmentStatusChange(VersionedMutation):
    """Schema for marking an appointment attended or no-show."""

    note: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    patient_id: UUID
    patient_user_id: int
    doctor_id: UUID
    doctor_user_id: int
    specialty_id: int
    appointment_date: date
    time_slot_id: int
    start_time: time
    end_time: time
    status: AppointmentStatus
    notes: str | None = None
    version: int
    created_by_user_id: int | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    patient_id: UUID | None = None
    doctor_id: UUID | None = None
    status: AppointmentStatus | None = None
    from_date: date | None = None
    to_date: date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class CancellationResponse(BaseModel):
    """Cancellation record for an appointment."""

    id: int
    canceled_at: datetime
    canceled_by_user_id: int | None
    reason: str | None

    model_config = {"from_attributes": True}


class RescheduleResponse(BaseModel):
    """One reschedule event."""

    id: int
    old_appointment_date: date
    old_time_slot_id: int
    new_appointment_date: date
    new_time_slot_id: int
    reason: str | None
    rescheduled_at: datetime
    rescheduled_by_user_id: int | None

    model_config = {"from_attributes": True}


class StatusEventResponse(BaseModel):
    """One status transition."""

    id: int
    old_status: AppointmentStatus
    new_status: AppointmentStatus
    changed_at: datetime
    changed_by_user_id: int | None
    note: str | None

    model_config = {"from_attributes": True}


class AppointmentHistoryResponse(BaseModel):
    """Full history of an appointment."""

    appointment: AppointmentResponse
    cancellation: CancellationResponse | None = None
    reschedules: list[RescheduleResponse] = Field(default_factory=list)
    status_events: list[StatusEventResponse] = Field(default_factory=list)
