"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from consultorio.core.exceptions import ForbiddenException
from consultorio.dependencies import CurrentActor, DatabaseSession
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
from consultorio.schemas.context import ActorRole
from consultorio.services.appointment_service import AppointmentService
from consultorio.services.authorization import AccessPolicy

router = APIRouter()


async def _load_for_actor(
    service: AppointmentService,
    appointment_id: UUID,
    policy: AccessPolicy,
) -> AppointmentResponse:
    appointment = await service.get_appointment(appointment_id)
    policy.ensure_can_access_appointment(appointment)
    return appointment


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Book a (doctor, date, slot) for a patient.

    Patients book for themselves; staff and admins book for anyone.
    Returns 409 when the slot is blocked or already taken.
    """
    service = AppointmentService(db)
    patient = await service.directory.get_patient_record(data.patient_id)
    AccessPolicy(actor).ensure_can_book_for(patient["user_id"])
    return await service.create_appointment(data, actor)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    patient_id: UUID | None = Query(None),
    doctor_id: UUID | None = Query(None),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    Patients only see their own appointments and doctors only their own
    bookings, whatever filters they pass.
    """
    service = AppointmentService(db)

    if not actor.is_privileged:
        if actor.role == ActorRole.PATIENT:
            own = await service.directory.get_patient_by_user_id(actor.user_id)
            if own is None:
                raise ForbiddenException("No patient profile is linked to this user")
            patient_id = own["public_id"]
        else:
            own = await service.directory.get_doctor_by_user_id(actor.user_id)
            if own is None:
                raise ForbiddenException("No doctor profile is linked to this user")
            doctor_id = own["public_id"]

    filters = AppointmentFilters(
        patient_id=patient_id,
        doctor_id=doctor_id,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment by its public id."""
    service = AppointmentService(db)
    return await _load_for_actor(service, appointment_id, AccessPolicy(actor))


@router.get(
    "/{appointment_id}/history",
    response_model=AppointmentHistoryResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment history",
)
async def get_appointment_history(
    appointment_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentHistoryResponse:
    """Get the cancellation, reschedules and status events of an appointment."""
    service = AppointmentService(db)
    await _load_for_actor(service, appointment_id, AccessPolicy(actor))
    return await service.get_history(appointment_id)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Cancel an appointment.

    ``version`` must match the appointment's current version.
    """
    service = AppointmentService(db)
    await _load_for_actor(service, appointment_id, AccessPolicy(actor))
    return await service.cancel_appointment(appointment_id, data, actor)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Move an appointment to another date and/or slot with the same doctor.

    ``version`` must match the appointment's current version.
    """
    service = AppointmentService(db)
    await _load_for_actor(service, appointment_id, AccessPolicy(actor))
    return await service.reschedule_appointment(appointment_id, data, actor)


@router.post(
    "/{appointment_id}/attended",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark appointment attended",
)
async def mark_attended(
    appointment_id: UUID,
    data: AppointmentStatusChange,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Record that the patient attended."""
    service = AppointmentService(db)
    appointment = await service.get_appointment(appointment_id)
    AccessPolicy(actor).ensure_can_record_outcome(appointment)
    return await service.mark_attended(appointment_id, data, actor)


@router.post(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark appointment no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    data: AppointmentStatusChange,
    actor: CurrentActor,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Record that the patient did not show up."""
    service = AppointmentService(db)
    appointment = await service.get_appointment(appointment_id)
    AccessPolicy(actor).ensure_can_record_outcome(appointment)
    return await service.mark_no_show(appointment_id, data, actor)
