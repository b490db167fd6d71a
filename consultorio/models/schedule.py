"""Slot catalog, weekly availability template and time block tables."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    SmallInteger,
    Table,
    Text,
    Time,
    UniqueConstraint,
    func,
    text,
)

from consultorio.models.metadata import IdType, metadata

# Reusable intervals, shared by every doctor
time_slots = Table(
    "time_slots",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("slot_minutes", SmallInteger, nullable=False),
    Column("label", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("start_time", "end_time", name="uq_time_slots_start_end"),
    CheckConstraint("end_time > start_time", name="time_slots_end_after_start_check"),
    CheckConstraint("slot_minutes BETWEEN 5 AND 240", name="time_slots_minutes_check"),
)

# Weekly template: day_of_week 0 = Sunday ... 6 = Saturday
availability_templates = Table(
    "availability_templates",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("doctor_id", IdType, ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=False),
    Column("day_of_week", SmallInteger, nullable=False),
    Column(
        "time_slot_id",
        IdType,
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("is_enabled", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint(
        "doctor_id",
        "day_of_week",
        "time_slot_id",
        name="uq_availability_templates_doctor_dow_slot",
    ),
    CheckConstraint("day_of_week BETWEEN 0 AND 6", name="availability_templates_dow_check"),
)

Index(
    "ix_availability_templates_doctor_dow",
    availability_templates.c.doctor_id,
    availability_templates.c.day_of_week,
)

time_blocks = Table(
    "time_blocks",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("doctor_id", IdType, ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=False),
    Column("block_date", Date, nullable=False),
    Column(
        "time_slot_id",
        IdType,
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("reason", Text, nullable=True),
    Column("created_by_user_id", IdType, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint(
        "doctor_id",
        "block_date",
        "time_slot_id",
        name="uq_time_blocks_doctor_date_slot",
    ),
    CheckConstraint(
        "reason IS NULL OR length(reason) BETWEEN 3 AND 500",
        name="time_blocks_reason_length_check",
    ),
)

Index("ix_time_blocks_doctor_date", time_blocks.c.doctor_id, time_blocks.c.block_date)
