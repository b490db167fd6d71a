"""Appointments table model using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    Table,
    Text,
    Uuid,
    func,
)

from consultorio.models.metadata import IdType, metadata
from consultorio.schemas.appointments import ACTIVE_STATUSES, AppointmentStatus

_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in AppointmentStatus)

appointments = Table(
    "appointments",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("public_id", Uuid, nullable=False, unique=True, default=uuid.uuid4),
    # Ownership / references
    Column("patient_id", IdType, ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False),
    Column("doctor_id", IdType, ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=False),
    Column(
        "specialty_id",
        IdType,
        ForeignKey("specialties.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    # Booking key
    Column("appointment_date", Date, nullable=False),
    Column(
        "time_slot_id",
        IdType,
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    # Status management
    Column("status", Text, nullable=False, server_default=AppointmentStatus.CONFIRMED.value),
    Column("notes", Text, nullable=True),
    # Audit fields
    Column("created_by_user_id", IdType, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("version", Integer, nullable=False, server_default="1"),
    # Constraints
    ForeignKeyConstraint(
        ["doctor_id", "specialty_id"],
        ["doctor_specialties.doctor_id", "doctor_specialties.specialty_id"],
        name="fk_appointments_doctor_specialty",
        ondelete="RESTRICT",
    ),
    CheckConstraint(f"status IN ({_STATUS_VALUES})", name="appointments_status_check"),
    CheckConstraint("version >= 1", name="appointments_version_check"),
    CheckConstraint(
        "notes IS NULL OR length(notes) <= 2000",
        name="appointments_notes_length_check",
    ),
    CheckConstraint("updated_at >= created_at", name="appointments_updated_after_created_check"),
)

# No doctor holds two active bookings for the same date and slot
_active_only = appointments.c.status.in_([status.value for status in ACTIVE_STATUSES])
Index(
    "ux_appointments_doctor_slot_active",
    appointments.c.doctor_id,
    appointments.c.appointment_date,
    appointments.c.time_slot_id,
    unique=True,
    postgresql_where=_active_only,
    sqlite_where=_active_only,
)

Index(
    "ix_appointments_patient_status_date",
    appointments.c.patient_id,
    appointments.c.status,
    appointments.c.appointment_date,
)
Index("ix_appointments_doctor_date", appointments.c.doctor_id, appointments.c.appointment_date)
