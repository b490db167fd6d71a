"""Specialty catalog and doctor-specialty junction tables using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Table,
    Text,
    func,
    text,
)

from consultorio.models.metadata import IdType, metadata

specialties = Table(
    "specialties",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("code", Text, nullable=True, unique=True),
    Column("name", Text, nullable=False, unique=True),
    Column("description", Text, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("length(name) BETWEEN 3 AND 120", name="specialties_name_length_check"),
    CheckConstraint(
        "code IS NULL OR length(code) BETWEEN 3 AND 30",
        name="specialties_code_length_check",
    ),
)

doctor_specialties = Table(
    "doctor_specialties",
    metadata,
    Column(
        "doctor_id",
        IdType,
        ForeignKey("doctors.id", ondelete="RESTRICT"),
        primary_key=True,
    ),
    Column(
        "specialty_id",
        IdType,
        ForeignKey("specialties.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    ),
    Column("is_primary", Boolean, nullable=False, server_default=text("false")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

# At most one primary specialty per doctor
Index(
    "ux_doctor_specialties_primary",
    doctor_specialties.c.doctor_id,
    unique=True,
    postgresql_where=doctor_specialties.c.is_primary.is_(True),
    sqlite_where=doctor_specialties.c.is_primary.is_(True),
)
