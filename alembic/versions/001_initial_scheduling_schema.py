"""Initial scheduling schema.

Directory (specialties, doctors, patients), slot catalog, weekly templates,
time blocks, appointments with their history, and the audit log.

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_STATUS_PREDICATE = "status IN ('CONFIRMED', 'RESCHEDULED')"


def _id() -> sa.Column:
    return sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("NOW()"),
        nullable=False,
    )


def _public_id() -> sa.Column:
    return sa.Column(
        "public_id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def upgrade() -> None:
    """Upgrade database schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # Directory
    op.create_table(
        "specialties",
        _id(),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _created_at(),
        sa.CheckConstraint("length(name) BETWEEN 3 AND 120", name="specialties_name_length_check"),
        sa.CheckConstraint(
            "code IS NULL OR length(code) BETWEEN 3 AND 30",
            name="specialties_code_length_check",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "doctors",
        _id(),
        _public_id(),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("license_number", sa.Text(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _created_at(),
        sa.CheckConstraint(
            "length(license_number) BETWEEN 5 AND 40",
            name="doctors_license_length_check",
        ),
        sa.CheckConstraint("length(first_name) BETWEEN 2 AND 80", name="doctors_first_name_check"),
        sa.CheckConstraint("length(last_name) BETWEEN 2 AND 80", name="doctors_last_name_check"),
        sa.CheckConstraint(
            "phone IS NULL OR length(phone) BETWEEN 7 AND 25",
            name="doctors_phone_length_check",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("public_id"),
        sa.UniqueConstraint("user_id"),
        sa.UniqueConstraint("license_number"),
    )

    op.create_table(
        "patients",
        _id(),
        _public_id(),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=False),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        _created_at(),
        sa.CheckConstraint("length(first_name) BETWEEN 2 AND 80", name="patients_first_name_check"),
        sa.CheckConstraint("length(last_name) BETWEEN 2 AND 80", name="patients_last_name_check"),
        sa.CheckConstraint(
            "phone IS NULL OR length(phone) BETWEEN 7 AND 25",
            name="patients_phone_length_check",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("public_id"),
        sa.UniqueConstraint("user_id"),
    )

    op.create_table(
        "doctor_specialties",
        sa.Column("doctor_id", sa.BigInteger(), nullable=False),
        sa.Column("specialty_id", sa.BigInteger(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["specialty_id"], ["specialties.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("doctor_id", "specialty_id"),
    )
    op.create_index(
        "ix_doctor_specialties_specialty_id", "doctor_specialties", ["specialty_id"]
    )
    op.create_index(
        "ux_doctor_specialties_primary",
        "doctor_specialties",
        ["doctor_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
    )

    # Schedule
    op.create_table(
        "time_slots",
        _id(),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("slot_minutes", sa.SmallInteger(), nullable=False),
        sa.Column("label", sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint("end_time > start_time", name="time_slots_end_after_start_check"),
        sa.CheckConstraint("slot_minutes BETWEEN 5 AND 240", name="time_slots_minutes_check"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("start_time", "end_time", name="uq_time_slots_start_end"),
    )

    op.create_table(
        "availability_templates",
        _id(),
        sa.Column("doctor_id", sa.BigInteger(), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("time_slot_id", sa.BigInteger(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _created_at(),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="availability_templates_dow_check"),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["time_slot_id"], ["time_slots.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "doctor_id",
            "day_of_week",
            "time_slot_id",
            name="uq_availability_templates_doctor_dow_slot",
        ),
    )
    op.create_index(
        "ix_availability_templates_doctor_dow",
        "availability_templates",
        ["doctor_id", "day_of_week"],
    )

    op.create_table(
        "time_blocks",
        _id(),
        sa.Column("doctor_id", sa.BigInteger(), nullable=False),
        sa.Column("block_date", sa.Date(), nullable=False),
        sa.Column("time_slot_id", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.BigInteger(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "reason IS NULL OR length(reason) BETWEEN 3 AND 500",
            name="time_blocks_reason_length_check",
        ),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["time_slot_id"], ["time_slots.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "doctor_id",
            "block_date",
            "time_slot_id",
            name="uq_time_blocks_doctor_date_slot",
        ),
    )
    op.create_index("ix_time_blocks_doctor_date", "time_blocks", ["doctor_id", "block_date"])

    # Appointments
    op.create_table(
        "appointments",
        _id(),
        _public_id(),
        sa.Column("patient_id", sa.BigInteger(), nullable=False),
        sa.Column("doctor_id", sa.BigInteger(), nullable=False),
        sa.Column("specialty_id", sa.BigInteger(), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("time_slot_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.Text(), server_default="CONFIRMED", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.BigInteger(), nullable=True),
        _created_at(),
        _created_at("updated_at"),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.CheckConstraint(
            "status IN ('CONFIRMED', 'CANCELED', 'RESCHEDULED', 'ATTENDED', 'NO_SHOW')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint("version >= 1", name="appointments_version_check"),
        sa.CheckConstraint(
            "notes IS NULL OR length(notes) <= 2000",
            name="appointments_notes_length_check",
        ),
        sa.CheckConstraint(
            "updated_at >= created_at",
            name="appointments_updated_after_created_check",
        ),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["specialty_id"], ["specialties.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["time_slot_id"], ["time_slots.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["doctor_id", "specialty_id"],
            ["doctor_specialties.doctor_id", "doctor_specialties.specialty_id"],
            name="fk_appointments_doctor_specialty",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("public_id"),
    )
    op.create_index(
        "ux_appointments_doctor_slot_active",
        "appointments",
        ["doctor_id", "appointment_date", "time_slot_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_STATUS_PREDICATE),
    )
    op.create_index(
        "ix_appointments_patient_status_date",
        "appointments",
        ["patient_id", "status", "appointment_date"],
    )
    op.create_index("ix_appointments_doctor_date", "appointments", ["doctor_id", "appointment_date"])

    # Appointment history
    op.create_table(
        "appointment_cancellations",
        _id(),
        sa.Column("appointment_id", sa.BigInteger(), nullable=False),
        _created_at("canceled_at"),
        sa.Column("canceled_by_user_id", sa.BigInteger(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "reason IS NULL OR length(reason) BETWEEN 3 AND 500",
            name="appointment_cancellations_reason_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("appointment_id"),
    )

    op.create_table(
        "appointment_reschedules",
        _id(),
        sa.Column("appointment_id", sa.BigInteger(), nullable=False),
        sa.Column("old_appointment_date", sa.Date(), nullable=False),
        sa.Column("old_time_slot_id", sa.BigInteger(), nullable=False),
        sa.Column("new_appointment_date", sa.Date(), nullable=False),
        sa.Column("new_time_slot_id", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        _created_at("rescheduled_at"),
        sa.Column("rescheduled_by_user_id", sa.BigInteger(), nullable=True),
        sa.CheckConstraint(
            "old_appointment_date <> new_appointment_date OR old_time_slot_id <> new_time_slot_id",
            name="appointment_reschedules_changes_slot_check",
        ),
        sa.CheckConstraint(
            "reason IS NULL OR length(reason) BETWEEN 3 AND 500",
            name="appointment_reschedules_reason_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["old_time_slot_id"], ["time_slots.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["new_time_slot_id"], ["time_slots.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_appointment_reschedules_appointment",
        "appointment_reschedules",
        ["appointment_id", "rescheduled_at"],
    )

    op.create_table(
        "appointment_status_events",
        _id(),
        sa.Column("appointment_id", sa.BigInteger(), nullable=False),
        sa.Column("old_status", sa.Text(), nullable=False),
        sa.Column("new_status", sa.Text(), nullable=False),
        _created_at("changed_at"),
        sa.Column("changed_by_user_id", sa.BigInteger(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.CheckConstraint("old_status <> new_status", name="appointment_status_events_change_check"),
        sa.CheckConstraint(
            "note IS NULL OR length(note) <= 500",
            name="appointment_status_events_note_check",
        ),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_appointment_status_events_appointment",
        "appointment_status_events",
        ["appointment_id", "changed_at"],
    )

    # Audit
    op.create_table(
        "audit_log",
        _id(),
        _created_at("occurred_at"),
        sa.Column("actor_user_id", sa.BigInteger(), nullable=True),
        sa.Column("action_code", sa.Text(), nullable=False),
        sa.Column("module", sa.Text(), nullable=False),
        sa.Column("object_table", sa.Text(), nullable=False),
        sa.Column("object_pk", postgresql.JSONB(), nullable=False),
        sa.Column("success", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("request_id", sa.Text(), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=False),
        sa.CheckConstraint(
            "length(action_code) BETWEEN 3 AND 80",
            name="audit_log_action_code_length_check",
        ),
        sa.CheckConstraint("length(module) BETWEEN 2 AND 40", name="audit_log_module_length_check"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_occurred_at", "audit_log", ["occurred_at"])
    op.create_index("ix_audit_log_actor_occurred_at", "audit_log", ["actor_user_id", "occurred_at"])
    op.create_index(
        "ix_audit_log_action_occurred_at", "audit_log", ["action_code", "occurred_at"]
    )

    # Append-only history: reject modification at the database as well
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_append_only_mutation()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    for table in ("audit_log", "appointment_status_events"):
        op.execute(
            f"""
            CREATE TRIGGER trg_{table}_append_only
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW EXECUTE FUNCTION reject_append_only_mutation();
            """
        )


def downgrade() -> None:
    """Downgrade database schema."""
    for table in ("appointment_status_events", "audit_log"):
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_append_only ON {table}")
    op.execute("DROP FUNCTION IF EXISTS reject_append_only_mutation()")

    op.drop_table("audit_log")
    op.drop_table("appointment_status_events")
    op.drop_table("appointment_reschedules")
    op.drop_table("appointment_cancellations")
    op.drop_table("appointments")
    op.drop_table("time_blocks")
    op.drop_table("availability_templates")
    op.drop_table("time_slots")
    op.drop_table("doctor_specialties")
    op.drop_table("patients")
    op.drop_table("doctors")
    op.drop_table("specialties")
