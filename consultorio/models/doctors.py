"""Doctor model definition using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from consultorio.models.metadata import IdType, metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("public_id", Uuid, nullable=False, unique=True, default=uuid.uuid4),
    # Identity reference (account lives in the external identity provider)
    Column("user_id", IdType, nullable=False, unique=True, index=True),
    # Professional credentials
    Column("license_number", Text, nullable=False, unique=True),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("phone", Text, nullable=True),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "length(license_number) BETWEEN 5 AND 40",
        name="doctors_license_length_check",
    ),
    CheckConstraint("length(first_name) BETWEEN 2 AND 80", name="doctors_first_name_check"),
    CheckConstraint("length(last_name) BETWEEN 2 AND 80", name="doctors_last_name_check"),
    CheckConstraint(
        "phone IS NULL OR length(phone) BETWEEN 7 AND 25",
        name="doctors_phone_length_check",
    ),
)
