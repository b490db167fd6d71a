"""Specialty, doctor and patient directory endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from consultorio.core.exceptions import ForbiddenException
from consultorio.dependencies import CurrentActor, DatabaseSession
from consultorio.schemas.context import ActorRole
from consultorio.schemas.directory import (
    DoctorCreate,
    DoctorResponse,
    DoctorSpecialtyAssign,
    PatientCreate,
    PatientResponse,
    SpecialtyCreate,
    SpecialtyResponse,
)
from consultorio.services.authorization import AccessPolicy
from consultorio.services.directory_service import DirectoryService

router = APIRouter()


# ============================================================================
# Specialties
# ============================================================================


@router.get("/specialties", response_model=list[SpecialtyResponse], summary="List specialties")
async def list_specialties(
    actor: CurrentActor,
    db: DatabaseSession,
    active_only: bool = Query(True),
) -> list[SpecialtyResponse]:
    """List specialties ordered by name."""
    return await DirectoryService(db).list_specialties(active_only=active_only)


@router.post(
    "/specialties",
    response_model=SpecialtyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create specialty",
)
async def create_specialty(
    data: SpecialtyCreate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> SpecialtyResponse:
    """Create a specialty. Staff or admin only."""
    AccessPolicy(actor).ensure_privileged()
    return await DirectoryService(db).create_specialty(data)


# ============================================================================
# Doctors
# ============================================================================


@router.post(
    "/doctors",
    response_model=DoctorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register doctor",
)
async def create_doctor(
    data: DoctorCreate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> DoctorResponse:
    """Register a doctor profile. Staff or admin only."""
    AccessPolicy(actor).ensure_privileged()
    return await DirectoryService(db).create_doctor(data)


@router.get("/doctors/{doctor_id}", response_model=DoctorResponse, summary="Get doctor")
async def get_doctor(
    doctor_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> DoctorResponse:
    """Get a doctor with their specialties."""
    return await DirectoryService(db).get_doctor(doctor_id)


@router.post(
    "/doctors/{doctor_id}/specialties",
    response_model=DoctorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign specialty to doctor",
)
async def assign_specialty(
    doctor_id: UUID,
    data: DoctorSpecialtyAssign,
    actor: CurrentActor,
    db: DatabaseSession,
) -> DoctorResponse:
    """Register a specialty for a doctor. Staff or admin only."""
    AccessPolicy(actor).ensure_privileged()
    return await DirectoryService(db).assign_specialty(doctor_id, data)


# ============================================================================
# Patients
# ============================================================================


@router.post(
    "/patients",
    response_model=PatientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register patient",
)
async def create_patient(
    data: PatientCreate,
    actor: CurrentActor,
    db: DatabaseSession,
) -> PatientResponse:
    """Register a patient profile. Staff or admin only."""
    AccessPolicy(actor).ensure_privileged()
    return await DirectoryService(db).create_patient(data)


@router.get("/patients/{patient_id}", response_model=PatientResponse, summary="Get patient")
async def get_patient(
    patient_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
) -> PatientResponse:
    """Get a patient. Patients may only read their own profile."""
    patient = await DirectoryService(db).get_patient(patient_id)
    if not actor.is_privileged and not (
        actor.role == ActorRole.PATIENT and actor.user_id == patient.user_id
    ):
        raise ForbiddenException("Access denied to this patient")
    return patient
