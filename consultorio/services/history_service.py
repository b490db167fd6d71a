"""Domain history: cancellations, reschedules and status events."""

from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from consultorio.models.appointment_history import (
    appointment_cancellations,
    appointment_reschedules,
    appointment_status_events,
)
from consultorio.schemas.appointments import (
    AppointmentStatus,
    CancellationResponse,
    RescheduleResponse,
    StatusEventResponse,
)


class HistoryRecorder:
    """Appends history rows inside the caller's unit of work."""

    def __init__(self, db: AsyncSession):
        """Initialize recorder with database session."""
        self.db = db

    async def record_status_change(
        self,
        appointment: Mapping[str, Any],
        new_status: AppointmentStatus,
        actor_user_id: int | None,
        note: str | None = None,
    ) -> int:
        """
        Append a StatusEvent for ``appointment`` moving to ``new_status``.

        The actor falls back to the appointment's creator when no acting
        user id is available.

        Args:
            appointment: Appointment row as it was before the transition
            new_status: Status being entered
            actor_user_id: Acting user, if known
            note: Optional note

        Returns:
            Id of the status event
        """
        old_status = AppointmentStatus(appointment["status"])
        if old_status == new_status:
            raise ValueError(f"{old_status.value} -> {new_status.value} is not a status change")

        changed_by = actor_user_id
        if changed_by is None:
            changed_by = appointment["created_by_user_id"]

        stmt = (
            insert(appointment_status_events)
            .values(
                appointment_id=appointment["id"],
                old_status=old_status.value,
                new_status=new_status.value,
                changed_at=datetime.now(UTC),
                changed_by_user_id=changed_by,
                note=note,
            )
            .returning(appointment_status_events.c.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def record_cancellation(
        self,
        appointment_id: int,
        actor_user_id: int | None,
        reason: str | None,
        canceled_at: datetime,
    ) -> int:
        """Append the one-to-one cancellation record."""
        stmt = (
            insert(appointment_cancellations)
            .values(
                appointment_id=appointment_id,
                canceled_at=canceled_at,
                canceled_by_user_id=actor_user_id,
                reason=reason,
            )
            .returning(appointment_cancellations.c.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def record_reschedule(
        self,
        appointment_id: int,
        old_date: date,
        old_time_slot_id: int,
        new_date: date,
        new_time_slot_id: int,
        actor_user_id: int | None,
        reason: str | None,
        rescheduled_at: datetime,
    ) -> int:
        """Append one reschedule record capturing both old and new (date, slot)."""
        if (old_date, old_time_slot_id) == (new_date, new_time_slot_id):
            raise ValueError("A reschedule record must change the date or the time slot")

        stmt = (
            insert(appointment_reschedules)
            .values(
                appointment_id=appointment_id,
                old_appointment_date=old_date,
                old_time_slot_id=old_time_slot_id,
                new_appointment_date=new_date,
                new_time_slot_id=new_time_slot_id,
                reason=reason,
                rescheduled_at=rescheduled_at,
                rescheduled_by_user_id=actor_user_id,
            )
            .returning(appointment_reschedules.c.id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def get_cancellation(self, appointment_id: int) -> CancellationResponse | None:
        """Get the cancellation record of an appointment, if any."""
        stmt = select(appointment_cancellations).where(
            appointment_cancellations.c.appointment_id == appointment_id
        )
        row = (await self.db.execute(stmt)).mappings().first()
        return CancellationResponse.model_validate(dict(row)) if row else None

    async def list_reschedules(self, appointment_id: int) -> list[RescheduleResponse]:
        """List reschedule records, oldest first."""
        stmt = (
            select(appointment_reschedules)
            .where(appointment_reschedules.c.appointment_id == appointment_id)
            .order_by(appointment_reschedules.c.rescheduled_at, appointment_reschedules.c.id)
        )
        rows = (await self.db.execute(stmt)).mappings().all()
        return [RescheduleResponse.model_validate(dict(row)) for row in rows]

    async def list_status_events(self, appointment_id: int) -> list[StatusEventResponse]:
        """List status events, oldest first."""
        stmt = (
            select(appointment_status_events)
            .where(appointment_status_events.c.appointment_id == appointment_id)
            .order_by(appointment_status_events.c.changed_at, appointment_status_events.c.id)
        )
        rows = (await self.db.execute(stmt)).mappings().all()
        return [StatusEventResponse.model_validate(dict(row)) for row in rows]
