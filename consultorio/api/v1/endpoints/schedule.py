"""Slot catalog, availability template and time block endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from consultorio.dependencies import CacheManagerDep, CurrentActor, DatabaseSession
from consultorio.schemas.context import ActorContext
from consultorio.schemas.schedule import (
    TemplateEntryResponse,
    TemplateEntryUpsert,
    TimeBlockCreate,
    TimeBlockResponse,
    TimeSlotCreate,
    TimeSlotResponse,
)
from consultorio.services.authorization import AccessPolicy
from consultorio.services.schedule_service import ScheduleService

router = APIRouter()


async def _ensure_can_manage(service: ScheduleService, doctor_id: UUID, actor: ActorContext) -> None:
    doctor = await service.directory.get_doctor_record(doctor_id)
    AccessPolicy(actor).ensure_can_manage_schedule(doctor["user_id"])


# ============================================================================
# Slot Catalog
# ============================================================================


@router.get("/time-slots", response_model=list[TimeSlotResponse], summary="List time slots")
async def list_time_slots(
    actor: CurrentActor,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> list[TimeSlotResponse]:
    """List the shared slot catalog ordered by start time."""
    return await ScheduleService(db, cache_manager=cache).list_time_slots()


@router.post(
    "/time-slots",
    response_model=TimeSlotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create time slot",
)
async def create_time_slot(
    data: TimeSlotCreate,
    actor: CurrentActor,
    db: DatabaseSession,
    cache: CacheManagerDep,
) -> TimeSlotResponse:
    """Add an interval to the slot catalog. Staff or admin only."""
    AccessPolicy(actor).ensure_privileged()
    return await ScheduleService(db, cache_manager=cache).create_time_slot(data, actor)


# ============================================================================
# Weekly Template
# ============================================================================


@router.get(
    "/doctors/{doctor_id}/template",
    response_model=list[TemplateEntryResponse],
    summary="Get a doctor's weekly template",
)
async def list_template(
    doctor_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    day_of_week: int | None = Query(None, ge=0, le=6),
) -> list[TemplateEntryResponse]:
    """List template entries; day_of_week is 0 = Sunday ... 6 = Saturday."""
    return await ScheduleService(db).list_template(doctor_id, day_of_week)


@router.put(
    "/doctors/{doctor_id}/template",
    response_model=TemplateEntryResponse,
    status_code=status.HTTP_200_OK,
    summary="Enable or disable a template slot",
)
async def set_template_entry(
    doctor_id: UUID,
    data: TemplateEntryUpsert,
    actor: CurrentActor,
    db: DatabaseSession,
) -> TemplateEntryResponse:
    """Enable or disable a catalog slot on a weekday for the doctor."""
    service = ScheduleService(db)
    await _ensure_can_manage(service, doctor_id, actor)
    return await service.set_template_entry(doctor_id, data, actor)


# ============================================================================
# Time Blocks
# ============================================================================


@router.get(
    "/doctors/{doctor_id}/blocks",
    response_model=list[TimeBlockResponse],
    summary="List a doctor's time blocks",
)
async def list_time_blocks(
    doctor_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
) -> list[TimeBlockResponse]:
    """List blocks, optionally restricted to a date range."""
    return await ScheduleService(db).list_time_blocks(doctor_id, from_date, to_date)


@router.post(
    "/doctors/{doctor_id}/blocks",
    response_model=TimeBlockResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Block a slot on a date",
)
async def create_time_block(
    doctor_id: UUID,
    data: TimeBlockCreate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> TimeBlockResponse:
    """Block one slot on one date. Existing bookings are not canceled."""
    service = ScheduleService(db)
    await _ensure_can_manage(service, doctor_id, actor)
    return await service.create_time_block(doctor_id, data, actor)


@router.delete(
    "/doctors/{doctor_id}/blocks/{block_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a time block",
)
async def delete_time_block(
    doctor_id: UUID,
    block_id: int,
    actor: CurrentActor,
    db: DatabaseSession,
) -> None:
    """Remove a block so the slot can be booked again."""
    service = ScheduleService(db)
    await _ensure_can_manage(service, doctor_id, actor)
    await service.delete_time_block(doctor_id, block_id, actor)
