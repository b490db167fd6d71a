"""Specialties, doctors and patients."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from consultorio.core.exceptions import ConflictException, NotFoundException, ValidationException
from consultorio.models.doctors import doctors
from consultorio.models.patients import patients
from consultorio.models.specialties import doctor_specialties, specialties
from consultorio.schemas.directory import (
    DoctorCreate,
    DoctorResponse,
    DoctorSpecialtyAssign,
    DoctorSpecialtyResponse,
    PatientCreate,
    PatientResponse,
    SpecialtyCreate,
    SpecialtyResponse,
)
from consultorio.services.unit_of_work import transactional

logger = structlog.get_logger()


class DirectoryService:
    """Service for the people and specialties bookings refer to."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    # ------------------------------------------------------------------
    # Specialties
    # ------------------------------------------------------------------

    @transactional
    async def create_specialty(self, data: SpecialtyCreate) -> SpecialtyResponse:
        """Create a specialty; names and codes are unique."""
        stmt = (
            insert(specialties)
            .values(
                name=data.name,
                code=data.code,
                description=data.description,
                created_at=datetime.now(UTC),
            )
            .returning(specialties)
        )
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            raise ConflictException(f"Specialty '{data.name}' already exists") from e

        return SpecialtyResponse.model_validate(dict(result.mappings().one()))

    async def list_specialties(self, active_only: bool = True) -> list[SpecialtyResponse]:
        """List specialties ordered by name."""
        stmt = select(specialties).order_by(specialties.c.name)
        if active_only:
            stmt = stmt.where(specialties.c.is_active.is_(True))
        rows = (await self.db.execute(stmt)).mappings().all()
        return [SpecialtyResponse.model_validate(dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Doctors
    # ------------------------------------------------------------------

    @transactional
    async def create_doctor(self, data: DoctorCreate) -> DoctorResponse:
        """Register a doctor profile for an existing identity."""
        stmt = (
            insert(doctors)
            .values(
                user_id=data.user_id,
                license_number=data.license_number,
                first_name=data.first_name,
                last_name=data.last_name,
                phone=data.phone,
                created_at=datetime.now(UTC),
            )
            .returning(doctors)
        )
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            raise ConflictException(
                "A doctor with this user id or license number already exists"
            ) from e

        row = result.mappings().one()
        logger.info("doctor_created", doctor_id=str(row["public_id"]))
        return await self._doctor_response(row)

    @transactional
    async def assign_specialty(
        self,
        doctor_id: UUID,
        data: DoctorSpecialtyAssign,
    ) -> DoctorResponse:
        """
        Link a doctor to a specialty.

        Raises:
            NotFoundException: If the doctor or specialty does not exist
            ConflictException: If the link exists or a second primary is requested
        """
        doctor = await self.get_doctor_record(doctor_id)
        specialty = (
            await self.db.execute(select(specialties).where(specialties.c.id == data.specialty_id))
        ).first()
        if specialty is None:
            raise NotFoundException("Specialty not found")

        stmt = insert(doctor_specialties).values(
            doctor_id=doctor["id"],
            specialty_id=data.specialty_id,
            is_primary=data.is_primary,
            created_at=datetime.now(UTC),
        )
        try:
            await self.db.execute(stmt)
        except IntegrityError as e:
            raise ConflictException(
                "Doctor already has this specialty or already has a primary specialty"
            ) from e

        return await self._doctor_response(doctor)

    async def get_doctor(self, doctor_id: UUID) -> DoctorResponse:
        """Get doctor by public id."""
        return await self._doctor_response(await self.get_doctor_record(doctor_id))

    async def get_doctor_record(self, doctor_id: UUID) -> RowMapping:
        """
        Get the raw doctor row by public id.

        Raises:
            NotFoundException: If the doctor does not exist
        """
        stmt = select(doctors).where(doctors.c.public_id == doctor_id)
        row = (await self.db.execute(stmt)).mappings().first()
        if row is None:
            raise NotFoundException("Doctor not found")
        return row

    async def get_doctor_by_user_id(self, user_id: int) -> RowMapping | None:
        """Get the doctor row owned by an identity, if any."""
        stmt = select(doctors).where(doctors.c.user_id == user_id)
        return (await self.db.execute(stmt)).mappings().first()

    async def ensure_doctor_specialty(self, doctor_pk: int, specialty_id: int) -> None:
        """
        Check that the doctor practices the specialty.

        Raises:
            ValidationException: If the (doctor, specialty) pair is not registered
        """
        stmt = select(doctor_specialties.c.doctor_id).where(
            and_(
                doctor_specialties.c.doctor_id == doctor_pk,
                doctor_specialties.c.specialty_id == specialty_id,
            )
        )
        if (await self.db.execute(stmt)).first() is None:
            raise ValidationException(
                f"Doctor does not practice specialty {specialty_id}; "
                "an appointment's doctor and specialty must be registered together"
            )

    async def _doctor_response(self, doctor: RowMapping) -> DoctorResponse:
        stmt = (
            select(
                doctor_specialties.c.specialty_id,
                specialties.c.name,
                doctor_specialties.c.is_primary,
            )
            .join(specialties, doctor_specialties.c.specialty_id == specialties.c.id)
            .where(doctor_specialties.c.doctor_id == doctor["id"])
            .order_by(doctor_specialties.c.is_primary.desc(), specialties.c.name)
        )
        links = (await self.db.execute(stmt)).mappings().all()

        data = dict(doctor)
        data["id"] = doctor["public_id"]
        data["specialties"] = [DoctorSpecialtyResponse.model_validate(dict(link)) for link in links]
        return DoctorResponse.model_validate(data)

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    @transactional
    async def create_patient(self, data: PatientCreate) -> PatientResponse:
        """Register a patient profile for an existing identity."""
        stmt = (
            insert(patients)
            .values(
                user_id=data.user_id,
                first_name=data.first_name,
                last_name=data.last_name,
                phone=data.phone,
                date_of_birth=data.date_of_birth,
                created_at=datetime.now(UTC),
            )
            .returning(patients)
        )
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            raise ConflictException("A patient with this user id already exists") from e

        return self._patient_response(result.mappings().one())

    async def get_patient(self, patient_id: UUID) -> PatientResponse:
        """Get patient by public id."""
        return self._patient_response(await self.get_patient_record(patient_id))

    async def get_patient_record(self, patient_id: UUID) -> RowMapping:
        """
        Get the raw patient row by public id.

        Raises:
            NotFoundException: If the patient does not exist
        """
        stmt = select(patients).where(patients.c.public_id == patient_id)
        row = (await self.db.execute(stmt)).mappings().first()
        if row is None:
            raise NotFoundException("Patient not found")
        return row

    async def get_patient_by_user_id(self, user_id: int) -> RowMapping | None:
        """Get the patient row owned by an identity, if any."""
        stmt = select(patients).where(patients.c.user_id == user_id)
        return (await self.db.execute(stmt)).mappings().first()

    @staticmethod
    def _patient_response(row: RowMapping) -> PatientResponse:
        data = dict(row)
        data["id"] = row["public_id"]
        return PatientResponse.model_validate(data)
