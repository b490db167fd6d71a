"""Slot catalog, weekly templates and time blocks."""

from datetime import UTC, date, datetime, time
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consultorio.config import settings
from consultorio.core.exceptions import ConflictException, NotFoundException, ValidationException
from consultorio.core.redis_client import CacheManager
from consultorio.models.doctors import doctors
from consultorio.models.schedule import availability_templates, time_blocks, time_slots
from consultorio.schemas.context import ActorContext
from consultorio.schemas.schedule import (
    TemplateEntryResponse,
    TemplateEntryUpsert,
    TimeBlockCreate,
    TimeBlockResponse,
    TimeSlotCreate,
    TimeSlotResponse,
)
from consultorio.services.audit_service import MODULE_AVAILABILITY, AuditRecorder
from consultorio.services.authorization import require_actor
from consultorio.services.directory_service import DirectoryService
from consultorio.services.unit_of_work import transactional

logger = structlog.get_logger()

SLOT_CATALOG_CACHE_KEY = "slots:catalog"


def slot_minutes(start: time, end: time) -> int:
    """Length of a same-day interval in whole minutes."""
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


class ScheduleService:
    """Service for the inputs of the availability calculation."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager
        self.directory = DirectoryService(db)
        self.audit = AuditRecorder(db)

    # ------------------------------------------------------------------
    # Slot catalog
    # ------------------------------------------------------------------

    async def create_time_slot(self, data: TimeSlotCreate, context: ActorContext) -> TimeSlotResponse:
        """
        Add an interval to the shared slot catalog.

        The cached catalog is dropped only after the new slot is committed, so
        a concurrent listing cannot repopulate the cache without it.

        Raises:
            ValidationException: If the interval is shorter than 5 or longer than 240 minutes
            ConflictException: If the same interval already exists
        """
        slot = await self._insert_time_slot(data, context)
        if self.cache:
            self.cache.delete(SLOT_CATALOG_CACHE_KEY)
        return slot

    @transactional
    async def _insert_time_slot(self, data: TimeSlotCreate, context: ActorContext) -> TimeSlotResponse:
        require_actor(context, "manage the slot catalog")

        minutes = slot_minutes(data.start_time, data.end_time)
        if not 5 <= minutes <= 240:
            raise ValidationException("Time slots must last between 5 and 240 minutes")

        stmt = (
            insert(time_slots)
            .values(
                start_time=data.start_time,
                end_time=data.end_time,
                slot_minutes=minutes,
                label=data.label,
                created_at=datetime.now(UTC),
            )
            .returning(time_slots)
        )
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            raise ConflictException(
                f"Time slot {data.start_time.isoformat()}-{data.end_time.isoformat()} already exists"
            ) from e

        row = result.mappings().one()
        await self.audit.record(
            context=context,
            action_code="SLOT_INSERT",
            module=MODULE_AVAILABILITY,
            object_table="time_slots",
            object_pk={"id": row["id"]},
            new=row,
        )
        return TimeSlotResponse.model_validate(dict(row))

    async def list_time_slots(self) -> list[TimeSlotResponse]:
        """List the slot catalog ordered by start time."""
        if self.cache:
            cached = self.cache.get_json(SLOT_CATALOG_CACHE_KEY)
            if cached:
                return [TimeSlotResponse.model_validate(item) for item in cached]

        stmt = select(time_slots).order_by(time_slots.c.start_time, time_slots.c.id)
        rows = (await self.db.execute(stmt)).mappings().all()
        slots = [TimeSlotResponse.model_validate(dict(row)) for row in rows]

        if self.cache and slots:
            self.cache.set_json(
                SLOT_CATALOG_CACHE_KEY,
                [slot.model_dump(mode="json") for slot in slots],
                ttl=settings.slot_catalog_cache_ttl,
            )

        return slots

    async def get_time_slot(self, time_slot_id: int) -> TimeSlotResponse:
        """Get one catalog slot."""
        row = (
            (await self.db.execute(select(time_slots).where(time_slots.c.id == time_slot_id)))
            .mappings()
            .first()
        )
        if row is None:
            raise NotFoundException("Time slot not found")
        return TimeSlotResponse.model_validate(dict(row))

    # ------------------------------------------------------------------
    # Weekly template
    # ------------------------------------------------------------------

    @transactional
    async def set_template_entry(
        self,
        doctor_id: UUID,
        data: TemplateEntryUpsert,
        context: ActorContext,
    ) -> TemplateEntryResponse:
        """
        Enable or disable a slot on a weekday for a doctor.

        Creates the entry on first use and toggles it afterwards. Existing
        bookings are left untouched when a slot is disabled.
        """
        require_actor(context, "change an availability template")

        doctor = await self.directory.get_doctor_record(doctor_id)
        await self.get_time_slot(data.time_slot_id)

        key = and_(
            availability_templates.c.doctor_id == doctor["id"],
            availability_templates.c.day_of_week == data.day_of_week,
            availability_templates.c.time_slot_id == data.time_slot_id,
        )
        existing = (
            (await self.db.execute(select(availability_templates).where(key))).mappings().first()
        )

        if existing is None:
            stmt = (
                insert(availability_templates)
                .values(
                    doctor_id=doctor["id"],
                    day_of_week=data.day_of_week,
                    time_slot_id=data.time_slot_id,
                    is_enabled=data.is_enabled,
                    created_at=datetime.now(UTC),
                )
                .returning(availability_templates)
            )
            action_code = "TEMPLATE_INSERT"
        else:
            stmt = (
                update(availability_templates)
                .where(availability_templates.c.id == existing["id"])
                .values(is_enabled=data.is_enabled)
                .returning(availability_templates)
            )
            action_code = "TEMPLATE_UPDATE"

        try:
            row = (await self.db.execute(stmt)).mappings().one()
        except IntegrityError as e:
            raise ConflictException("Template entry was changed concurrently") from e

        await self.audit.record(
            context=context,
            action_code=action_code,
            module=MODULE_AVAILABILITY,
            object_table="availability_templates",
            object_pk={"id": row["id"]},
            old=existing,
            new=row,
        )

        logger.info(
            "template_entry_saved",
            doctor_id=str(doctor_id),
            day_of_week=data.day_of_week,
            time_slot_id=data.time_slot_id,
            is_enabled=data.is_enabled,
        )

        return await self._get_template_entry(row["id"])

    async def list_template(
        self,
        doctor_id: UUID,
        day_of_week: int | None = None,
    ) -> list[TemplateEntryResponse]:
        """List a doctor's template entries, enabled or not."""
        doctor = await self.directory.get_doctor_record(doctor_id)

        stmt = self._template_select().where(availability_templates.c.doctor_id == doctor["id"])
        if day_of_week is not None:
            stmt = stmt.where(availability_templates.c.day_of_week == day_of_week)
        stmt = stmt.order_by(availability_templates.c.day_of_week, time_slots.c.start_time)

        rows = (await self.db.execute(stmt)).mappings().all()
        return [TemplateEntryResponse.model_validate(dict(row)) for row in rows]

    async def _get_template_entry(self, entry_id: int) -> TemplateEntryResponse:
        stmt = self._template_select().where(availability_templates.c.id == entry_id)
        row = (await self.db.execute(stmt)).mappings().one()
        return TemplateEntryResponse.model_validate(dict(row))

    @staticmethod
    def _template_select() -> Any:
        return select(
            availability_templates.c.id,
            doctors.c.public_id.label("doctor_id"),
            availability_templates.c.day_of_week,
            availability_templates.c.time_slot_id,
            time_slots.c.start_time,
            time_slots.c.end_time,
            availability_templates.c.is_enabled,
        ).select_from(
            availability_templates.join(
                doctors, availability_templates.c.doctor_id == doctors.c.id
            ).join(time_slots, availability_templates.c.time_slot_id == time_slots.c.id)
        )

    # ------------------------------------------------------------------
    # Time blocks
    # ------------------------------------------------------------------

    @transactional
    async def create_time_block(
        self,
        doctor_id: UUID,
        data: TimeBlockCreate,
        context: ActorContext,
    ) -> TimeBlockResponse:
        """
        Block one slot on one date for a doctor.

        Bookings already holding the slot are kept; the block only stops new ones.

        Raises:
            NotFoundException: If the doctor or slot does not exist
            ConflictException: If the slot is already blocked on that date
        """
        actor_id = require_actor(context, "block a time slot")

        doctor = await self.directory.get_doctor_record(doctor_id)
        await self.get_time_slot(data.time_slot_id)

        stmt = (
            insert(time_blocks)
            .values(
                doctor_id=doctor["id"],
                block_date=data.block_date,
                time_slot_id=data.time_slot_id,
                reason=data.reason,
                created_by_user_id=actor_id,
                created_at=datetime.now(UTC),
            )
            .returning(time_blocks)
        )
        try:
            row = (await self.db.execute(stmt)).mappings().one()
        except IntegrityError as e:
            raise ConflictException(
                f"Time slot {data.time_slot_id} is already blocked on {data.block_date.isoformat()}"
            ) from e

        await self.audit.record(
            context=context,
            action_code="BLOCK_INSERT",
            module=MODULE_AVAILABILITY,
            object_table="time_blocks",
            object_pk={"id": row["id"]},
            new=row,
        )

        logger.info(
            "time_block_created",
            doctor_id=str(doctor_id),
            block_date=data.block_date.isoformat(),
            time_slot_id=data.time_slot_id,
        )

        return self._block_response(row, doctor_id)

    @transactional
    async def delete_time_block(
        self,
        doctor_id: UUID,
        block_id: int,
        context: ActorContext,
    ) -> None:
        """Remove a block, making the slot bookable again."""
        require_actor(context, "remove a time block")

        doctor = await self.directory.get_doctor_record(doctor_id)
        stmt = select(time_blocks).where(
            and_(time_blocks.c.id == block_id, time_blocks.c.doctor_id == doctor["id"])
        )
        existing = (await self.db.execute(stmt)).mappings().first()
        if existing is None:
            raise NotFoundException("Time block not found")

        await self.db.execute(delete(time_blocks).where(time_blocks.c.id == block_id))

        await self.audit.record(
            context=context,
            action_code="BLOCK_DELETE",
            module=MODULE_AVAILABILITY,
            object_table="time_blocks",
            object_pk={"id": block_id},
            old=existing,
        )

        logger.info("time_block_deleted", doctor_id=str(doctor_id), block_id=block_id)

    async def list_time_blocks(
        self,
        doctor_id: UUID,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[TimeBlockResponse]:
        """List a doctor's blocks, optionally within a date range."""
        doctor = await self.directory.get_doctor_record(doctor_id)

        conditions = [time_blocks.c.doctor_id == doctor["id"]]
        if from_date:
            conditions.append(time_blocks.c.block_date >= from_date)
        if to_date:
            conditions.append(time_blocks.c.block_date <= to_date)

        stmt = (
            select(time_blocks)
            .join(time_slots, time_blocks.c.time_slot_id == time_slots.c.id)
            .where(and_(*conditions))
            .order_by(time_blocks.c.block_date, time_slots.c.start_time)
        )
        rows = (await self.db.execute(stmt)).mappings().all()
        return [self._block_response(row, doctor_id) for row in rows]

    @staticmethod
    def _block_response(row: Any, doctor_id: UUID) -> TimeBlockResponse:
        data = dict(row)
        data["doctor_id"] = doctor_id
        return TimeBlockResponse.model_validate(data)
