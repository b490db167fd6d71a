"""Cancellation, reschedule and status-event history tables."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Table,
    Text,
    func,
)

from consultorio.models.metadata import IdType, metadata

appointment_cancellations = Table(
    "appointment_cancellations",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column(
        "appointment_id",
        IdType,
        ForeignKey("appointments.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    ),
    Column("canceled_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("canceled_by_user_id", IdType, nullable=True),
    Column("reason", Text, nullable=True),
    CheckConstraint(
        "reason IS NULL OR length(reason) BETWEEN 3 AND 500",
        name="appointment_cancellations_reason_check",
    ),
)

appointment_reschedules = Table(
    "appointment_reschedules",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column(
        "appointment_id",
        IdType,
        ForeignKey("appointments.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("old_appointment_date", Date, nullable=False),
    Column(
        "old_time_slot_id",
        IdType,
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("new_appointment_date", Date, nullable=False),
    Column(
        "new_time_slot_id",
        IdType,
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("reason", Text, nullable=True),
    Column("rescheduled_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("rescheduled_by_user_id", IdType, nullable=True),
    CheckConstraint(
        "old_appointment_date <> new_appointment_date OR old_time_slot_id <> new_time_slot_id",
        name="appointment_reschedules_changes_slot_check",
    ),
    CheckConstraint(
        "reason IS NULL OR length(reason) BETWEEN 3 AND 500",
        name="appointment_reschedules_reason_check",
    ),
)

Index(
    "ix_appointment_reschedules_appointment",
    appointment_reschedules.c.appointment_id,
    appointment_reschedules.c.rescheduled_at,
)

# Append-only: written by HistoryRecorder, never updated or deleted
appointment_status_events = Table(
    "appointment_status_events",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column(
        "appointment_id",
        IdType,
        ForeignKey("appointments.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("old_status", Text, nullable=False),
    Column("new_status", Text, nullable=False),
    Column("changed_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("changed_by_user_id", IdType, nullable=True),
    Column("note", Text, nullable=True),
    CheckConstraint("old_status <> new_status", name="appointment_status_events_change_check"),
    CheckConstraint(
        "note IS NULL OR length(note) <= 500",
        name="appointment_status_events_note_check",
    ),
)

Index(
    "ix_appointment_status_events_appointment",
    appointment_status_events.c.appointment_id,
    appointment_status_events.c.changed_at,
)
