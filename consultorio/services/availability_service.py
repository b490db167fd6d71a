"""
Availability calculator.

A doctor's slot on a date is offered when the weekly template enables that
slot for the date's weekday. An offered slot is available unless a time
block or an active booking (CONFIRMED or RESCHEDULED) sits on exactly the
same (date, slot). The calculator returns every offered slot, flagged
available or not, so callers can render a complete grid.
"""

from collections import defaultdict
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import and_, select, union_all
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from consultorio.config import settings
from consultorio.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from consultorio.models.appointments import appointments
from consultorio.models.schedule import availability_templates, time_blocks, time_slots
from consultorio.schemas.appointments import ACTIVE_STATUSES
from consultorio.schemas.schedule import AvailabilitySlot
from consultorio.services.directory_service import DirectoryService

_ACTIVE_VALUES = [status.value for status in ACTIVE_STATUSES]


def day_of_week(value: date) -> int:
    """Weekday number used by templates: 0 = Sunday ... 6 = Saturday."""
    return value.isoweekday() % 7


def iter_dates(start_date: date, end_date: date):
    """Yield every calendar date in the inclusive range."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


class AvailabilityService:
    """Read-only availability queries."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db
        self.directory = DirectoryService(db)

    async def get_availability(
        self,
        doctor_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[AvailabilitySlot]:
        """
        Compute the availability grid for a doctor.

        Args:
            doctor_id: Doctor public id
            start_date: First date, inclusive
            end_date: Last date, inclusive

        Returns:
            Template-eligible slots ordered by date then start time; every
            slot is unavailable while the doctor is inactive

        Raises:
            ValidationException: If the range is reversed or too long
            NotFoundException: If the doctor does not exist
        """
        if start_date > end_date:
            raise ValidationException("start_date must be on or before end_date")

        span = (end_date - start_date).days + 1
        if span > settings.availability_max_range_days:
            raise ValidationException(
                f"Availability range spans {span} days; "
                f"at most {settings.availability_max_range_days} days may be queried at once"
            )

        doctor = await self.directory.get_doctor_record(doctor_id)
        template = await self._enabled_template(doctor["id"])
        if not template:
            return []

        unavailable = await self._unavailable_keys(doctor["id"], start_date, end_date)
        # An inactive doctor keeps the template but takes no bookings
        accepting = bool(doctor["is_active"])

        grid: list[AvailabilitySlot] = []
        for current in iter_dates(start_date, end_date):
            for slot in template.get(day_of_week(current), []):
                grid.append(
                    AvailabilitySlot(
                        date=current,
                        slot_id=slot["time_slot_id"],
                        start_time=slot["start_time"],
                        end_time=slot["end_time"],
                        is_available=accepting
                        and (current, slot["time_slot_id"]) not in unavailable,
                    )
                )
        return grid

    async def ensure_slot_bookable(self, doctor_pk: int, target_date: date, time_slot_id: int) -> None:
        """
        Check that a slot can take a booking before attempting the write.

        The active-booking uniqueness itself is left to the storage index.

        Raises:
            NotFoundException: If the time slot does not exist
            ValidationException: If the template does not offer the slot on that weekday
            ConflictException: If the slot is blocked on that date
        """
        slot = (
            await self.db.execute(select(time_slots.c.id).where(time_slots.c.id == time_slot_id))
        ).first()
        if slot is None:
            raise NotFoundException("Time slot not found")

        offered_stmt = select(availability_templates.c.id).where(
            and_(
                availability_templates.c.doctor_id == doctor_pk,
                availability_templates.c.day_of_week == day_of_week(target_date),
                availability_templates.c.time_slot_id == time_slot_id,
                availability_templates.c.is_enabled.is_(True),
            )
        )
        if (await self.db.execute(offered_stmt)).first() is None:
            raise ValidationException(
                f"Doctor does not offer time slot {time_slot_id} on {target_date.strftime('%A')}s"
            )

        blocked_stmt = select(time_blocks.c.id).where(
            and_(
                time_blocks.c.doctor_id == doctor_pk,
                time_blocks.c.block_date == target_date,
                time_blocks.c.time_slot_id == time_slot_id,
            )
        )
        if (await self.db.execute(blocked_stmt)).first() is not None:
            raise ConflictException(
                f"Time slot {time_slot_id} is blocked for this doctor on {target_date.isoformat()}"
            )

    async def _enabled_template(self, doctor_pk: int) -> dict[int, list[RowMapping]]:
        stmt = (
            select(
                availability_templates.c.day_of_week,
                availability_templates.c.time_slot_id,
                time_slots.c.start_time,
                time_slots.c.end_time,
            )
            .join(time_slots, availability_templates.c.time_slot_id == time_slots.c.id)
            .where(
                availability_templates.c.doctor_id == doctor_pk,
                availability_templates.c.is_enabled.is_(True),
            )
            .order_by(time_slots.c.start_time, time_slots.c.id)
        )
        by_weekday: dict[int, list[RowMapping]] = defaultdict(list)
        for row in (await self.db.execute(stmt)).mappings().all():
            by_weekday[row["day_of_week"]].append(row)
        return by_weekday

    async def _unavailable_keys(
        self,
        doctor_pk: int,
        start_date: date,
        end_date: date,
    ) -> set[tuple[date, int]]:
        # One statement so a concurrent booking is seen entirely before or after its commit
        blocked = select(
            time_blocks.c.block_date.label("slot_date"),
            time_blocks.c.time_slot_id.label("time_slot_id"),
        ).where(
            time_blocks.c.doctor_id == doctor_pk,
            time_blocks.c.block_date.between(start_date, end_date),
        )
        taken = select(
            appointments.c.appointment_date.label("slot_date"),
            appointments.c.time_slot_id.label("time_slot_id"),
        ).where(
            appointments.c.doctor_id == doctor_pk,
            appointments.c.appointment_date.between(start_date, end_date),
            appointments.c.status.in_(_ACTIVE_VALUES),
        )
        rows = (await self.db.execute(union_all(blocked, taken))).all()
        return {(row.slot_date, row.time_slot_id) for row in rows}
