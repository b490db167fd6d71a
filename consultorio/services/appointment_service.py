"""Appointment service: booking, cancellation, rescheduling and outcomes."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consultorio.core.exceptions import ConflictException, NotFoundException, ValidationException
from consultorio.models.appointments import appointments
from consultorio.models.doctors import doctors
from consultorio.models.patients import patients
from consultorio.models.schedule import time_slots
from consultorio.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentHistoryResponse,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentStatusChange,
)
from consultorio.schemas.context import ActorContext
from consultorio.services.audit_service import MODULE_APPOINTMENTS, AuditRecorder
from consultorio.services.authorization import require_actor
from consultorio.services.availability_service import AvailabilityService
from consultorio.services.directory_service import DirectoryService
from consultorio.services.history_service import HistoryRecorder
from consultorio.services.status_lifecycle import ensure_transition, is_status_change
from consultorio.services.unit_of_work import transactional

logger = structlog.get_logger()

ACTIVE_SLOT_INDEX = "ux_appointments_doctor_slot_active"
# SQLite reports the columns rather than the index name
_ACTIVE_SLOT_COLUMNS = "appointments.doctor_id, appointments.appointment_date, appointments.time_slot_id"

SLOT_TAKEN_MESSAGE = "Doctor already has an active appointment for this date and time slot"


def is_active_slot_violation(exc: IntegrityError) -> bool:
    """Tell whether an IntegrityError came from the one-active-booking-per-slot index."""
    message = str(exc.orig)
    return ACTIVE_SLOT_INDEX in message or _ACTIVE_SLOT_COLUMNS in message


class AppointmentService:
    """
    Booking engine.

    Every mutation runs as one unit of work: the appointment write, its
    StatusEvent, its cancellation or reschedule record and its audit entry
    commit together or not at all. Races for the same (doctor, date, slot)
    are decided by the storage layer's partial unique index; the loser gets
    a ``ConflictException`` and is never retried here.
    """

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db
        self.directory = DirectoryService(db)
        self.availability = AvailabilityService(db)
        self.history = HistoryRecorder(db)
        self.audit = AuditRecorder(db)

    @transactional
    async def create_appointment(
        self,
        data: AppointmentCreate,
        context: ActorContext,
    ) -> AppointmentResponse:
        """
        Book a slot for a patient.

        Args:
            data: Appointment creation data
            context: Acting identity

        Returns:
            Created appointment, status CONFIRMED and version 1

        Raises:
            NotFoundException: Unknown patient, doctor or time slot
            ValidationException: Inactive doctor, doctor/specialty not registered,
                or slot not offered on that weekday
            ConflictException: Slot blocked or already actively booked
        """
        actor_id = require_actor(context, "book an appointment")

        patient = await self.directory.get_patient_record(data.patient_id)
        doctor = await self.directory.get_doctor_record(data.doctor_id)
        if not doctor["is_active"]:
            raise ValidationException("Doctor is not accepting appointments")

        await self.directory.ensure_doctor_specialty(doctor["id"], data.specialty_id)
        await self.availability.ensure_slot_bookable(
            doctor["id"], data.appointment_date, data.time_slot_id
        )

        now = datetime.now(UTC)
        stmt = (
            insert(appointments)
            .values(
                patient_id=patient["id"],
                doctor_id=doctor["id"],
                specialty_id=data.specialty_id,
                appointment_date=data.appointment_date,
                time_slot_id=data.time_slot_id,
                status=AppointmentStatus.CONFIRMED.value,
                notes=data.notes,
                created_by_user_id=actor_id,
                created_at=now,
                updated_at=now,
                version=1,
            )
            .returning(appointments)
        )

        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            if is_active_slot_violation(e):
                logger.info(
                    "appointment_conflict",
                    doctor_id=str(data.doctor_id),
                    appointment_date=data.appointment_date.isoformat(),
                    time_slot_id=data.time_slot_id,
                )
                raise ConflictException(SLOT_TAKEN_MESSAGE) from e
            raise

        row = result.mappings().one()

        await self.audit.record(
            context=context,
            action_code="APPOINTMENT_INSERT",
            module=MODULE_APPOINTMENTS,
            object_table="appointments",
            object_pk={"public_id": row["public_id"]},
            new=row,
        )

        logger.info(
            "appointment_created",
            appointment_id=str(row["public_id"]),
            doctor_id=str(data.doctor_id),
            appointment_date=data.appointment_date.isoformat(),
            time_slot_id=data.time_slot_id,
        )

        return await self._get_response_by_pk(row["id"])

    @transactional
    async def cancel_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentCancel,
        context: ActorContext,
    ) -> AppointmentResponse:
        """
        Cancel an active appointment.

        Writes one cancellation record, one StatusEvent and one audit entry.

        Raises:
            NotFoundException: Unknown appointment
            ConflictException: Stale version or status not cancelable
        """
        actor_id = require_actor(context, "cancel an appointment")

        current = await self._get_record(appointment_id)
        self._check_version(current, data.version)
        old_status = AppointmentStatus(current["status"])
        ensure_transition(old_status, AppointmentStatus.CANCELED)

        updated = await self._apply_update(
            current,
            data.version,
            {"status": AppointmentStatus.CANCELED.value},
        )

        await self.history.record_cancellation(
            current["id"],
            actor_user_id=actor_id,
            reason=data.reason,
            canceled_at=updated["updated_at"],
        )
        await self.history.record_status_change(current, AppointmentStatus.CANCELED, actor_id)
        await self._audit_update(context, current, updated)

        logger.info(
            "appointment_canceled",
            appointment_id=str(appointment_id),
            previous_status=old_status.value,
            version=updated["version"],
        )

        return await self._get_response_by_pk(current["id"])

    @transactional
    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentReschedule,
        context: ActorContext,
    ) -> AppointmentResponse:
        """
        Move an active appointment to another date and/or slot.

        Writes one reschedule record, one audit entry and, unless the
        appointment was already RESCHEDULED, one StatusEvent.

        Raises:
            NotFoundException: Unknown appointment or time slot
            ValidationException: New (date, slot) equals the current one, or the
                slot is not offered on that weekday
            ConflictException: Stale version, status not reschedulable, slot
                blocked or already actively booked
        """
        actor_id = require_actor(context, "reschedule an appointment")

        current = await self._get_record(appointment_id)
        self._check_version(current, data.version)
        old_status = AppointmentStatus(current["status"])
        ensure_transition(old_status, AppointmentStatus.RESCHEDULED)

        old_key = (current["appointment_date"], current["time_slot_id"])
        new_key = (data.new_date, data.new_time_slot_id)
        if old_key == new_key:
            raise ValidationException(
                "Reschedule must change the date or the time slot; "
                "the requested slot is the one already booked"
            )

        await self.availability.ensure_slot_bookable(
            current["doctor_id"], data.new_date, data.new_time_slot_id
        )

        try:
            updated = await self._apply_update(
                current,
                data.version,
                {
                    "status": AppointmentStatus.RESCHEDULED.value,
                    "appointment_date": data.new_date,
                    "time_slot_id": data.new_time_slot_id,
                },
            )
        except IntegrityError as e:
            if is_active_slot_violation(e):
                logger.info(
                    "appointment_reschedule_conflict",
                    appointment_id=str(appointment_id),
                    appointment_date=data.new_date.isoformat(),
                    time_slot_id=data.new_time_slot_id,
                )
                raise ConflictException(SLOT_TAKEN_MESSAGE) from e
            raise

        await self.history.record_reschedule(
            current["id"],
            old_date=current["appointment_date"],
            old_time_slot_id=current["time_slot_id"],
            new_date=data.new_date,
            new_time_slot_id=data.new_time_slot_id,
            actor_user_id=actor_id,
            reason=data.reason,
            rescheduled_at=updated["updated_at"],
        )
        if is_status_change(old_status, AppointmentStatus.RESCHEDULED):
            await self.history.record_status_change(
                current, AppointmentStatus.RESCHEDULED, actor_id
            )
        await self._audit_update(context, current, updated)

        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            old_date=old_key[0].isoformat(),
            old_time_slot_id=old_key[1],
            new_date=data.new_date.isoformat(),
            new_time_slot_id=data.new_time_slot_id,
        )

        return await self._get_response_by_pk(current["id"])

    async def mark_attended(
        self,
        appointment_id: UUID,
        data: AppointmentStatusChange,
        context: ActorContext,
    ) -> AppointmentResponse:
        """Record that the patient attended. Terminal."""
        return await self._close(appointment_id, data, context, AppointmentStatus.ATTENDED)

    async def mark_no_show(
        self,
        appointment_id: UUID,
        data: AppointmentStatusChange,
        context: ActorContext,
    ) -> AppointmentResponse:
        """Record that the patient did not show up. Terminal."""
        return await self._close(appointment_id, data, context, AppointmentStatus.NO_SHOW)

    @transactional
    async def _close(
        self,
        appointment_id: UUID,
        data: AppointmentStatusChange,
        context: ActorContext,
        target: AppointmentStatus,
    ) -> AppointmentResponse:
        actor_id = require_actor(context, f"mark an appointment {target.value}")

        current = await self._get_record(appointment_id)
        self._check_version(current, data.version)
        old_status = AppointmentStatus(current["status"])
        ensure_transition(old_status, target)

        updated = await self._apply_update(current, data.version, {"status": target.value})
        await self.history.record_status_change(current, target, actor_id, note=data.note)
        await self._audit_update(context, current, updated)

        logger.info(
            "appointment_closed",
            appointment_id=str(appointment_id),
            previous_status=old_status.value,
            status=target.value,
        )

        return await self._get_response_by_pk(current["id"])

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by public id.

        Raises:
            NotFoundException: If appointment not found
        """
        stmt = self._response_select().where(appointments.c.public_id == appointment_id)
        row = (await self.db.execute(stmt)).mappings().first()
        if row is None:
            raise NotFoundException("Appointment not found")
        return AppointmentResponse.model_validate(dict(row))

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list ordered by date then slot start time
        """
        conditions = []

        if filters.patient_id:
            conditions.append(patients.c.public_id == filters.patient_id)

        if filters.doctor_id:
            conditions.append(doctors.c.public_id == filters.doctor_id)

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.from_date:
            conditions.append(appointments.c.appointment_date >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_date <= filters.to_date)

        where_clause = and_(*conditions) if conditions else True

        count_stmt = (
            select(func.count())
            .select_from(
                appointments.join(patients, appointments.c.patient_id == patients.c.id).join(
                    doctors, appointments.c.doctor_id == doctors.c.id
                )
            )
            .where(where_clause)
        )
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            self._response_select()
            .where(where_clause)
            .order_by(appointments.c.appointment_date, time_slots.c.start_time, appointments.c.id)
            .limit(filters.page_size)
            .offset(offset)
        )
        rows = (await self.db.execute(stmt)).mappings().all()

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AppointmentResponse.model_validate(dict(row)) for row in rows],
        )

    async def get_history(self, appointment_id: UUID) -> AppointmentHistoryResponse:
        """Get an appointment with its cancellation, reschedules and status events."""
        appointment = await self.get_appointment(appointment_id)
        record = await self._get_record(appointment_id)

        return AppointmentHistoryResponse(
            appointment=appointment,
            cancellation=await self.history.get_cancellation(record["id"]),
            reschedules=await self.history.list_reschedules(record["id"]),
            status_events=await self.history.list_status_events(record["id"]),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get_record(self, appointment_id: UUID) -> RowMapping:
        stmt = select(appointments).where(appointments.c.public_id == appointment_id)
        row = (await self.db.execute(stmt)).mappings().first()
        if row is None:
            raise NotFoundException("Appointment not found")
        return row

    @staticmethod
    def _check_version(current: RowMapping, expected_version: int) -> None:
        if current["version"] != expected_version:
            raise ConflictException(
                f"Appointment has changed: expected version {expected_version}, "
                f"current version is {current['version']}"
            )

    async def _apply_update(
        self,
        current: RowMapping,
        expected_version: int,
        values: dict[str, Any],
    ) -> RowMapping:
        """Write ``values``, bumping version, only if nobody else did in between."""
        now = datetime.now(UTC)
        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == current["id"],
                    appointments.c.version == expected_version,
                )
            )
            .values(
                version=appointments.c.version + 1,
                updated_at=max(now, _as_utc(current["created_at"])),
                **values,
            )
            .returning(appointments)
        )
        row = (await self.db.execute(stmt)).mappings().first()
        if row is None:
            raise ConflictException(
                f"Appointment was modified concurrently; version {expected_version} is stale"
            )
        return row

    async def _audit_update(
        self,
        context: ActorContext,
        old: RowMapping,
        new: RowMapping,
    ) -> None:
        await self.audit.record(
            context=context,
            action_code="APPOINTMENT_UPDATE",
            module=MODULE_APPOINTMENTS,
            object_table="appointments",
            object_pk={"public_id": old["public_id"]},
            old=old,
            new=new,
        )

    @staticmethod
    def _response_select() -> Any:
        return select(
            appointments.c.public_id.label("id"),
            patients.c.public_id.label("patient_id"),
            patients.c.user_id.label("patient_user_id"),
            doctors.c.public_id.label("doctor_id"),
            doctors.c.user_id.label("doctor_user_id"),
            appointments.c.specialty_id,
            appointments.c.appointment_date,
            appointments.c.time_slot_id,
            time_slots.c.start_time,
            time_slots.c.end_time,
            appointments.c.status,
            appointments.c.notes,
            appointments.c.version,
            appointments.c.created_by_user_id,
            appointments.c.created_at,
            appointments.c.updated_at,
        ).select_from(
            appointments.join(patients, appointments.c.patient_id == patients.c.id)
            .join(doctors, appointments.c.doctor_id == doctors.c.id)
            .join(time_slots, appointments.c.time_slot_id == time_slots.c.id)
        )

    async def _get_response_by_pk(self, pk: int) -> AppointmentResponse:
        stmt = self._response_select().where(appointments.c.id == pk)
        row = (await self.db.execute(stmt)).mappings().one()
        return AppointmentResponse.model_validate(dict(row))


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
