"""Patient model definition using SQLAlchemy Core."""

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Table,
    Text,
    Uuid,
    func,
)

from consultorio.models.metadata import IdType, metadata

patients = Table(
    "patients",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("public_id", Uuid, nullable=False, unique=True, default=uuid.uuid4),
    Column("user_id", IdType, nullable=False, unique=True, index=True),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("phone", Text, nullable=True),
    Column("date_of_birth", Date, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("length(first_name) BETWEEN 2 AND 80", name="patients_first_name_check"),
    CheckConstraint("length(last_name) BETWEEN 2 AND 80", name="patients_last_name_check"),
    CheckConstraint(
        "phone IS NULL OR length(phone) BETWEEN 7 AND 25",
        name="patients_phone_length_check",
    ),
)
