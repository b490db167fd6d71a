"""Tests for the availability calculator."""

from datetime import date, time, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import insert, update

from consultorio.config import settings
from consultorio.core.exceptions import ConflictException, NotFoundException, ValidationException
from consultorio.models import appointments, doctors, time_blocks
from consultorio.schemas.appointments import AppointmentCancel, AppointmentCreate
from consultorio.services.appointment_service import AppointmentService
from consultorio.services.availability_service import AvailabilityService, day_of_week, iter_dates

from conftest import MONDAY


def test_day_of_week_starts_on_sunday():
    assert day_of_week(date(2030, 3, 3)) == 0  # Sunday
    assert day_of_week(MONDAY) == 1
    assert day_of_week(date(2030, 3, 9)) == 6  # Saturday


def test_iter_dates_is_inclusive():
    assert list(iter_dates(MONDAY, MONDAY + timedelta(days=2))) == [
        MONDAY,
        MONDAY + timedelta(days=1),
        MONDAY + timedelta(days=2),
    ]


async def test_monday_slots_are_offered(db_session, seeded):
    grid = await AvailabilityService(db_session).get_availability(
        seeded["doctor_id"], MONDAY, MONDAY
    )

    assert [(s.date, s.slot_id, s.is_available) for s in grid] == [
        (MONDAY, seeded["slot_id"], True),
        (MONDAY, seeded["second_slot_id"], True),
    ]
    assert grid[0].start_time == time(9, 0)
    assert grid[0].end_time == time(9, 30)


async def test_days_without_template_are_absent(db_session, seeded):
    tuesday = MONDAY + timedelta(days=1)
    grid = await AvailabilityService(db_session).get_availability(
        seeded["doctor_id"], tuesday, tuesday + timedelta(days=5)
    )
    assert grid == []


async def test_range_spanning_two_mondays_is_ordered(db_session, seeded):
    next_monday = MONDAY + timedelta(days=7)
    grid = await AvailabilityService(db_session).get_availability(
        seeded["doctor_id"], MONDAY, next_monday
    )

    assert [(s.date, s.start_time) for s in grid] == [
        (MONDAY, time(9, 0)),
        (MONDAY, time(9, 30)),
        (next_monday, time(9, 0)),
        (next_monday, time(9, 30)),
    ]


async def test_blocked_slot_is_unavailable(db_session, seeded):
    await db_session.execute(
        insert(time_blocks).values(
            doctor_id=seeded["doctor_pk"],
            block_date=MONDAY,
            time_slot_id=seeded["slot_id"],
            reason="Conference",
        )
    )
    await db_session.commit()

    grid = await AvailabilityService(db_session).get_availability(
        seeded["doctor_id"], MONDAY, MONDAY
    )

    flags = {s.slot_id: s.is_available for s in grid}
    assert flags == {seeded["slot_id"]: False, seeded["second_slot_id"]: True}


async def test_booking_and_cancel_flip_availability(db_session, seeded, patient_actor):
    service = AppointmentService(db_session)
    availability = AvailabilityService(db_session)

    created = await service.create_appointment(
        AppointmentCreate(
            patient_id=seeded["patient_id"],
            doctor_id=seeded["doctor_id"],
            specialty_id=seeded["specialty_id"],
            appointment_date=MONDAY,
            time_slot_id=seeded["slot_id"],
        ),
        patient_actor,
    )

    grid = await availability.get_availability(seeded["doctor_id"], MONDAY, MONDAY)
    assert {s.slot_id: s.is_available for s in grid}[seeded["slot_id"]] is False

    await service.cancel_appointment(
        created.id, AppointmentCancel(version=created.version), patient_actor
    )

    grid = await availability.get_availability(seeded["doctor_id"], MONDAY, MONDAY)
    assert {s.slot_id: s.is_available for s in grid}[seeded["slot_id"]] is True


async def test_terminal_bookings_do_not_occupy_slot(db_session, seeded):
    await db_session.execute(
        insert(appointments).values(
            patient_id=seeded["patient_pk"],
            doctor_id=seeded["doctor_pk"],
            specialty_id=seeded["specialty_id"],
            appointment_date=MONDAY,
            time_slot_id=seeded["slot_id"],
            status="ATTENDED",
        )
    )
    await db_session.commit()

    grid = await AvailabilityService(db_session).get_availability(
        seeded["doctor_id"], MONDAY, MONDAY
    )
    assert all(s.is_available for s in grid)


async def test_reversed_range_is_rejected(db_session, seeded):
    with pytest.raises(ValidationException):
        await AvailabilityService(db_session).get_availability(
            seeded["doctor_id"], MONDAY, MONDAY - timedelta(days=1)
        )


async def test_range_longer_than_limit_is_rejected(db_session, seeded):
    end = MONDAY + timedelta(days=settings.availability_max_range_days)
    with pytest.raises(ValidationException) as exc_info:
        await AvailabilityService(db_session).get_availability(seeded["doctor_id"], MONDAY, end)
    assert str(settings.availability_max_range_days) in exc_info.value.message


async def test_unknown_doctor(db_session, seeded):
    with pytest.raises(NotFoundException):
        await AvailabilityService(db_session).get_availability(uuid4(), MONDAY, MONDAY)


async def test_ensure_slot_bookable_reasons(db_session, seeded):
    availability = AvailabilityService(db_session)

    with pytest.raises(NotFoundException):
        await availability.ensure_slot_bookable(seeded["doctor_pk"], MONDAY, 9999)

    with pytest.raises(ValidationException):
        await availability.ensure_slot_bookable(
            seeded["doctor_pk"], MONDAY + timedelta(days=1), seeded["slot_id"]
        )

    await db_session.execute(
        insert(time_blocks).values(
            doctor_id=seeded["doctor_pk"], block_date=MONDAY, time_slot_id=seeded["slot_id"]
        )
    )
    await db_session.commit()

    with pytest.raises(ConflictException):
        await availability.ensure_slot_bookable(seeded["doctor_pk"], MONDAY, seeded["slot_id"])


async def test_inactive_doctor_offers_no_bookable_slots(db_session, seeded, patient_actor):
    await db_session.execute(
        update(doctors).where(doctors.c.id == seeded["doctor_pk"]).values(is_active=False)
    )
    await db_session.commit()

    grid = await AvailabilityService(db_session).get_availability(
        seeded["doctor_id"], MONDAY, MONDAY
    )
    assert [(s.slot_id, s.is_available) for s in grid] == [
        (seeded["slot_id"], False),
        (seeded["second_slot_id"], False),
    ]

    with pytest.raises(ValidationException):
        await AppointmentService(db_session).create_appointment(
            AppointmentCreate(
                patient_id=seeded["patient_id"],
                doctor_id=seeded["doctor_id"],
                specialty_id=seeded["specialty_id"],
                appointment_date=MONDAY,
                time_slot_id=seeded["slot_id"],
            ),
            patient_actor,
        )
