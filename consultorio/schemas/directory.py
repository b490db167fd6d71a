"""Specialty, doctor and patient schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

# ============================================================================
# Specialty Schemas
# ============================================================================


class SpecialtyCreate(BaseModel):
    """Schema for creating a specialty."""

    name: str = Field(..., min_length=3, max_length=120)
    code: str | None = Field(None, min_length=3, max_length=30)
    description: str | None = None


class SpecialtyResponse(BaseModel):
    """Specialty response schema."""

    id: int
    name: str
    code: str | None = None
    description: str | None = None
    is_active: bool

    model_config = {"from_attributes": True}


# ============================================================================
# Doctor Schemas
# ============================================================================


class DoctorCreate(BaseModel):
    """Schema for registering a doctor."""

    user_id: int = Field(..., ge=1)
    license_number: str = Field(..., min_length=5, max_length=40)
    first_name: str = Field(..., min_length=2, max_length=80)
    last_name: str = Field(..., min_length=2, max_length=80)
    phone: str | None = Field(None, min_length=7, max_length=25)


class DoctorSpecialtyAssign(BaseModel):
    """Schema for linking a doctor to a specialty."""

    specialty_id: int = Field(..., ge=1)
    is_primary: bool = False


class DoctorSpecialtyResponse(BaseModel):
    """Doctor-specialty link."""

    specialty_id: int
    name: str
    is_primary: bool

    model_config = {"from_attributes": True}


class DoctorResponse(BaseModel):
    """Doctor response schema."""

    id: UUID
    user_id: int
    license_number: str
    first_name: str
    last_name: str
    phone: str | None = None
    is_active: bool
    created_at: datetime
    specialties: list[DoctorSpecialtyResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


# ============================================================================
# Patient Schemas
# ============================================================================


class PatientCreate(BaseModel):
    """Schema for registering a patient."""

    user_id: int = Field(..., ge=1)
    first_name: str = Field(..., min_length=2, max_length=80)
    last_name: str = Field(..., min_length=2, max_length=80)
    phone: str | None = Field(None, min_length=7, max_length=25)
    date_of_birth: date | None = None


class PatientResponse(BaseModel):
    """Patient response schema."""

    id: UUID
    user_id: int
    first_name: str
    last_name: str
    phone: str | None = None
    date_of_birth: date | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
