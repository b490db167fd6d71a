"""Tests for the booking engine."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, insert, select

from consultorio.core.exceptions import (
    ConflictException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from consultorio.models import (
    appointment_cancellations,
    appointment_reschedules,
    appointment_status_events,
    appointments,
    audit_log,
    specialties,
    time_blocks,
)
from consultorio.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentReschedule,
    AppointmentStatus,
    AppointmentStatusChange,
)
from consultorio.schemas.context import ActorContext
from consultorio.services.appointment_service import AppointmentService

from conftest import MONDAY, PATIENT_USER_ID


def booking(seeded, **overrides) -> AppointmentCreate:
    data = {
        "patient_id": seeded["patient_id"],
        "doctor_id": seeded["doctor_id"],
        "specialty_id": seeded["specialty_id"],
        "appointment_date": MONDAY,
        "time_slot_id": seeded["slot_id"],
        "notes": "Follow-up",
    }
    data.update(overrides)
    return AppointmentCreate(**data)


async def count(db_session, table, **where) -> int:
    stmt = select(func.count()).select_from(table)
    for column, value in where.items():
        stmt = stmt.where(table.c[column] == value)
    return (await db_session.execute(stmt)).scalar_one()


# ============================================================================
# Create
# ============================================================================


async def test_create_appointment(db_session, seeded, patient_actor):
    created = await AppointmentService(db_session).create_appointment(
        booking(seeded), patient_actor
    )

    assert created.status == AppointmentStatus.CONFIRMED
    assert created.version == 1
    assert created.patient_id == seeded["patient_id"]
    assert created.doctor_id == seeded["doctor_id"]
    assert created.patient_user_id == PATIENT_USER_ID
    assert created.created_by_user_id == PATIENT_USER_ID
    assert created.start_time.hour == 9

    assert await count(db_session, audit_log, action_code="APPOINTMENT_INSERT") == 1
    assert await count(db_session, appointment_status_events) == 0


async def test_create_requires_actor(db_session, seeded):
    with pytest.raises(UnauthorizedException):
        await AppointmentService(db_session).create_appointment(
            booking(seeded), ActorContext(user_id=None)
        )
    assert await count(db_session, appointments) == 0


async def test_second_booking_for_same_slot_conflicts(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    await service.create_appointment(booking(seeded), patient_actor)

    with pytest.raises(ConflictException) as exc_info:
        await service.create_appointment(
            booking(seeded, patient_id=seeded["other_patient_id"]), patient_actor
        )

    assert "active appointment" in exc_info.value.message
    assert await count(db_session, appointments) == 1
    assert await count(db_session, audit_log) == 1


async def test_concurrent_bookings_have_single_winner(session_factory, seeded, patient_actor):
    async def attempt(patient_id):
        async with session_factory() as session:
            return await AppointmentService(session).create_appointment(
                booking(seeded, patient_id=patient_id), patient_actor
            )

    results = await asyncio.gather(
        attempt(seeded["patient_id"]),
        attempt(seeded["other_patient_id"]),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, BaseException)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictException)

    async with session_factory() as session:
        assert await count(session, appointments) == 1
        assert await count(session, audit_log) == 1


async def test_blocked_slot_cannot_be_booked(db_session, seeded, patient_actor):
    await db_session.execute(
        insert(time_blocks).values(
            doctor_id=seeded["doctor_pk"], block_date=MONDAY, time_slot_id=seeded["slot_id"]
        )
    )
    await db_session.commit()

    with pytest.raises(ConflictException) as exc_info:
        await AppointmentService(db_session).create_appointment(booking(seeded), patient_actor)
    assert "blocked" in exc_info.value.message


async def test_slot_not_in_template_is_rejected(db_session, seeded, patient_actor):
    with pytest.raises(ValidationException):
        await AppointmentService(db_session).create_appointment(
            booking(seeded, appointment_date=MONDAY + timedelta(days=1)), patient_actor
        )


async def test_specialty_must_belong_to_doctor(db_session, seeded, patient_actor):
    other_specialty = (
        await db_session.execute(
            insert(specialties).values(name="Dermatology").returning(specialties.c.id)
        )
    ).scalar_one()
    await db_session.commit()

    with pytest.raises(ValidationException) as exc_info:
        await AppointmentService(db_session).create_appointment(
            booking(seeded, specialty_id=other_specialty), patient_actor
        )
    assert "specialty" in exc_info.value.message
    assert await count(db_session, appointments) == 0


async def test_unknown_patient(db_session, seeded, patient_actor):
    from uuid import uuid4

    with pytest.raises(NotFoundException):
        await AppointmentService(db_session).create_appointment(
            booking(seeded, patient_id=uuid4()), patient_actor
        )


# ============================================================================
# Cancel
# ============================================================================


async def test_cancel_writes_history(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)

    canceled = await service.cancel_appointment(
        created.id, AppointmentCancel(version=1, reason="Feeling better"), patient_actor
    )

    assert canceled.status == AppointmentStatus.CANCELED
    assert canceled.version == 2
    assert canceled.updated_at >= canceled.created_at

    history = await service.get_history(created.id)
    assert history.cancellation is not None
    assert history.cancellation.reason == "Feeling better"
    assert history.cancellation.canceled_by_user_id == PATIENT_USER_ID
    assert [(e.old_status, e.new_status) for e in history.status_events] == [
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELED)
    ]
    assert await count(db_session, appointment_cancellations) == 1
    assert await count(db_session, audit_log, action_code="APPOINTMENT_UPDATE") == 1


async def test_cancel_with_stale_version_conflicts(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)
    await service.reschedule_appointment(
        created.id,
        AppointmentReschedule(version=1, new_date=MONDAY, new_time_slot_id=seeded["second_slot_id"]),
        patient_actor,
    )

    with pytest.raises(ConflictException) as exc_info:
        await service.cancel_appointment(created.id, AppointmentCancel(version=1), patient_actor)

    assert "version" in exc_info.value.message
    current = await service.get_appointment(created.id)
    assert current.status == AppointmentStatus.RESCHEDULED
    assert current.version == 2


async def test_cancel_twice_conflicts(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)
    await service.cancel_appointment(created.id, AppointmentCancel(version=1), patient_actor)

    with pytest.raises(ConflictException) as exc_info:
        await service.cancel_appointment(created.id, AppointmentCancel(version=2), patient_actor)

    assert "terminal" in exc_info.value.message
    assert await count(db_session, appointment_cancellations) == 1
    assert await count(db_session, appointment_status_events) == 1


async def test_canceled_slot_can_be_booked_again(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    first = await service.create_appointment(booking(seeded), patient_actor)
    await service.cancel_appointment(first.id, AppointmentCancel(version=1), patient_actor)

    second = await service.create_appointment(
        booking(seeded, patient_id=seeded["other_patient_id"]), patient_actor
    )

    assert second.id != first.id
    assert second.status == AppointmentStatus.CONFIRMED


# ============================================================================
# Reschedule
# ============================================================================


async def test_reschedule_moves_booking(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)
    next_monday = MONDAY + timedelta(days=7)

    moved = await service.reschedule_appointment(
        created.id,
        AppointmentReschedule(
            version=1,
            new_date=next_monday,
            new_time_slot_id=seeded["slot_id"],
            reason="Travel",
        ),
        patient_actor,
    )

    assert moved.status == AppointmentStatus.RESCHEDULED
    assert moved.appointment_date == next_monday
    assert moved.version == 2

    history = await service.get_history(created.id)
    assert len(history.reschedules) == 1
    record = history.reschedules[0]
    assert (record.old_appointment_date, record.new_appointment_date) == (MONDAY, next_monday)
    assert len(history.status_events) == 1

    # The original slot is free again
    await service.create_appointment(
        booking(seeded, patient_id=seeded["other_patient_id"]), patient_actor
    )


async def test_second_reschedule_adds_no_status_event(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)

    await service.reschedule_appointment(
        created.id,
        AppointmentReschedule(version=1, new_date=MONDAY, new_time_slot_id=seeded["second_slot_id"]),
        patient_actor,
    )
    moved = await service.reschedule_appointment(
        created.id,
        AppointmentReschedule(
            version=2, new_date=MONDAY + timedelta(days=7), new_time_slot_id=seeded["slot_id"]
        ),
        patient_actor,
    )

    assert moved.version == 3
    assert await count(db_session, appointment_reschedules) == 2
    assert await count(db_session, appointment_status_events) == 1
    assert await count(db_session, audit_log, action_code="APPOINTMENT_UPDATE") == 2


async def test_reschedule_to_same_slot_is_rejected(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)

    with pytest.raises(ValidationException):
        await service.reschedule_appointment(
            created.id,
            AppointmentReschedule(version=1, new_date=MONDAY, new_time_slot_id=seeded["slot_id"]),
            patient_actor,
        )

    current = await service.get_appointment(created.id)
    assert current.version == 1
    assert await count(db_session, appointment_reschedules) == 0


async def test_reschedule_onto_taken_slot_conflicts(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    first = await service.create_appointment(booking(seeded), patient_actor)
    await service.create_appointment(
        booking(
            seeded, patient_id=seeded["other_patient_id"], time_slot_id=seeded["second_slot_id"]
        ),
        patient_actor,
    )

    with pytest.raises(ConflictException):
        await service.reschedule_appointment(
            first.id,
            AppointmentReschedule(
                version=1, new_date=MONDAY, new_time_slot_id=seeded["second_slot_id"]
            ),
            patient_actor,
        )

    current = await service.get_appointment(first.id)
    assert current.time_slot_id == seeded["slot_id"]
    assert current.status == AppointmentStatus.CONFIRMED
    assert await count(db_session, appointment_reschedules) == 0


# ============================================================================
# Outcomes
# ============================================================================


async def test_mark_attended_is_terminal(db_session, seeded, patient_actor, doctor_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)

    attended = await service.mark_attended(
        created.id, AppointmentStatusChange(version=1, note="Seen"), doctor_actor
    )
    assert attended.status == AppointmentStatus.ATTENDED

    events = (await service.get_history(created.id)).status_events
    assert events[-1].changed_by_user_id == doctor_actor.user_id
    assert events[-1].note == "Seen"

    with pytest.raises(ConflictException):
        await service.mark_no_show(created.id, AppointmentStatusChange(version=2), doctor_actor)
    with pytest.raises(ConflictException):
        await service.reschedule_appointment(
            created.id,
            AppointmentReschedule(
                version=2, new_date=MONDAY, new_time_slot_id=seeded["second_slot_id"]
            ),
            patient_actor,
        )


async def test_no_show_after_reschedule(db_session, seeded, patient_actor, staff_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)
    await service.reschedule_appointment(
        created.id,
        AppointmentReschedule(version=1, new_date=MONDAY, new_time_slot_id=seeded["second_slot_id"]),
        patient_actor,
    )

    closed = await service.mark_no_show(created.id, AppointmentStatusChange(version=2), staff_actor)

    assert closed.status == AppointmentStatus.NO_SHOW
    assert closed.version == 3
    history = await service.get_history(created.id)
    assert [e.new_status for e in history.status_events] == [
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.NO_SHOW,
    ]


async def test_status_change_requires_actor(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    created = await service.create_appointment(booking(seeded), patient_actor)

    with pytest.raises(UnauthorizedException):
        await service.mark_attended(
            created.id, AppointmentStatusChange(version=1), ActorContext(user_id=None)
        )


async def test_unknown_appointment(db_session, seeded, patient_actor):
    from uuid import uuid4

    with pytest.raises(NotFoundException):
        await AppointmentService(db_session).cancel_appointment(
            uuid4(), AppointmentCancel(version=1), patient_actor
        )


# ============================================================================
# Listing
# ============================================================================


async def test_list_appointments_filters(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    first = await service.create_appointment(booking(seeded), patient_actor)
    await service.create_appointment(
        booking(
            seeded, patient_id=seeded["other_patient_id"], time_slot_id=seeded["second_slot_id"]
        ),
        patient_actor,
    )
    await service.cancel_appointment(first.id, AppointmentCancel(version=1), patient_actor)

    everything = await service.list_appointments(AppointmentFilters())
    assert everything.total == 2
    assert [a.time_slot_id for a in everything.items] == [
        seeded["slot_id"],
        seeded["second_slot_id"],
    ]

    mine = await service.list_appointments(AppointmentFilters(patient_id=seeded["patient_id"]))
    assert [a.id for a in mine.items] == [first.id]

    confirmed = await service.list_appointments(
        AppointmentFilters(status=AppointmentStatus.CONFIRMED)
    )
    assert confirmed.total == 1
    assert confirmed.items[0].patient_id == seeded["other_patient_id"]
