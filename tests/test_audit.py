"""Tests for the append-only audit trail and status history."""

from datetime import UTC, datetime

import pytest
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import OperationalError

from consultorio.core.exceptions import AuditWriteException, ImmutableRecordException
from consultorio.models import APPEND_ONLY_TABLES, appointment_status_events, appointments, audit_log
from consultorio.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentStatus,
)
from consultorio.schemas.audit import AuditFilters
from consultorio.services.appointment_service import AppointmentService
from consultorio.services.audit_service import MODULE_APPOINTMENTS, AuditRecorder
from consultorio.services.history_service import HistoryRecorder

from conftest import MONDAY, PATIENT_USER_ID


def booking(seeded) -> AppointmentCreate:
    return AppointmentCreate(
        patient_id=seeded["patient_id"],
        doctor_id=seeded["doctor_id"],
        specialty_id=seeded["specialty_id"],
        appointment_date=MONDAY,
        time_slot_id=seeded["slot_id"],
    )


async def _fail_write(self, values):
    raise OperationalError("INSERT INTO audit_log", {}, Exception("disk I/O error"))


def test_recorder_offers_no_mutation_api():
    for name in ("update", "delete", "update_entry", "delete_entry", "remove"):
        assert not hasattr(AuditRecorder, name)


def test_append_only_tables():
    assert APPEND_ONLY_TABLES == {"audit_log", "appointment_status_events"}


async def test_audit_entry_captures_context(db_session, seeded, patient_actor):
    created = await AppointmentService(db_session).create_appointment(
        booking(seeded), patient_actor
    )

    page = await AuditRecorder(db_session).list_entries(AuditFilters(object_table="appointments"))

    assert page.total == 1
    entry = page.items[0]
    assert entry.action_code == "APPOINTMENT_INSERT"
    assert entry.module == MODULE_APPOINTMENTS
    assert entry.actor_user_id == PATIENT_USER_ID
    assert entry.request_id == "req-patient"
    assert entry.object_pk == {"public_id": str(created.id)}
    assert entry.details["old"] is None
    assert entry.details["new"]["status"] == "CONFIRMED"


async def test_update_entry_has_before_and_after(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)
    await service.cancel_appointment(created.id, AppointmentCancel(version=1), patient_actor)

    page = await AuditRecorder(db_session).list_entries(
        AuditFilters(action_code="APPOINTMENT_UPDATE")
    )

    details = page.items[0].details
    assert details["old"]["status"] == "CONFIRMED"
    assert details["new"]["status"] == "CANCELED"
    assert details["new"]["version"] == 2


async def test_failed_audit_write_rolls_back_create(
    db_session, seeded, patient_actor, monkeypatch
):
    monkeypatch.setattr(AuditRecorder, "_write", _fail_write)

    with pytest.raises(AuditWriteException) as exc_info:
        await AppointmentService(db_session).create_appointment(booking(seeded), patient_actor)

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Internal server error"
    assert "disk I/O error" in exc_info.value.reason
    assert (await db_session.execute(select(func.count()).select_from(appointments))).scalar() == 0


async def test_failed_audit_write_rolls_back_cancel(
    db_session, seeded, patient_actor, monkeypatch
):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)

    monkeypatch.setattr(AuditRecorder, "_write", _fail_write)
    with pytest.raises(AuditWriteException):
        await service.cancel_appointment(created.id, AppointmentCancel(version=1), patient_actor)

    current = await service.get_appointment(created.id)
    assert current.status == AppointmentStatus.CONFIRMED
    assert current.version == 1
    history = await service.get_history(created.id)
    assert history.cancellation is None
    assert history.status_events == []


async def test_audit_rows_cannot_be_updated_or_deleted(db_session, seeded, patient_actor):
    await AppointmentService(db_session).create_appointment(booking(seeded), patient_actor)

    with pytest.raises(ImmutableRecordException):
        await db_session.execute(update(audit_log).values(success=False))
    await db_session.rollback()

    with pytest.raises(ImmutableRecordException):
        await db_session.execute(delete(audit_log))
    await db_session.rollback()

    assert (await db_session.execute(select(func.count()).select_from(audit_log))).scalar() == 1


async def test_status_events_cannot_be_modified(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)
    await service.cancel_appointment(created.id, AppointmentCancel(version=1), patient_actor)

    with pytest.raises(ImmutableRecordException):
        await db_session.execute(
            update(appointment_status_events).values(note="rewritten history")
        )
    await db_session.rollback()

    with pytest.raises(ImmutableRecordException):
        await db_session.execute(delete(appointment_status_events))
    await db_session.rollback()


async def test_status_event_actor_falls_back_to_creator(db_session, seeded):
    appointment_id = (
        await db_session.execute(
            insert(appointments)
            .values(
                patient_id=seeded["patient_pk"],
                doctor_id=seeded["doctor_pk"],
                specialty_id=seeded["specialty_id"],
                appointment_date=MONDAY,
                time_slot_id=seeded["slot_id"],
                created_by_user_id=PATIENT_USER_ID,
            )
            .returning(appointments.c.id)
        )
    ).scalar_one()
    row = (
        (await db_session.execute(select(appointments).where(appointments.c.id == appointment_id)))
        .mappings()
        .one()
    )

    history = HistoryRecorder(db_session)
    await history.record_status_change(row, AppointmentStatus.CANCELED, actor_user_id=None)
    await db_session.commit()

    events = await history.list_status_events(appointment_id)
    assert events[0].changed_by_user_id == PATIENT_USER_ID


async def test_history_rejects_non_changes(db_session, seeded):
    history = HistoryRecorder(db_session)
    row = {"id": 1, "status": "CONFIRMED", "created_by_user_id": None}

    with pytest.raises(ValueError):
        await history.record_status_change(row, AppointmentStatus.CONFIRMED, actor_user_id=1)

    with pytest.raises(ValueError):
        await history.record_reschedule(
            1,
            old_date=MONDAY,
            old_time_slot_id=seeded["slot_id"],
            new_date=MONDAY,
            new_time_slot_id=seeded["slot_id"],
            actor_user_id=1,
            reason=None,
            rescheduled_at=datetime.now(UTC),
        )
