"""Slot catalog, weekly template, time block and availability schemas."""

from datetime import date, datetime, time
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

# ============================================================================
# Slot Catalog
# ============================================================================


class TimeSlotCreate(BaseModel):
    """Schema for adding a reusable interval to the catalog."""

    start_time: time
    end_time: time
    label: str | None = Field(None, max_length=100)

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, v: time, info: Any) -> time:
        """Validate end time is after start time."""
        if "start_time" in info.data and v <= info.data["start_time"]:
            raise ValueError("End time must be after start time")
        return v


class TimeSlotResponse(BaseModel):
    """Time slot response schema."""

    id: int
    start_time: time
    end_time: time
    slot_minutes: int
    label: str | None = None

    model_config = {"from_attributes": True}


# ============================================================================
# Weekly Template
# ============================================================================


class TemplateEntryUpsert(BaseModel):
    """Enable or disable a catalog slot on a weekday (0 = Sunday ... 6 = Saturday)."""

    day_of_week: int = Field(..., ge=0, le=6)
    time_slot_id: int = Field(..., ge=1)
    is_enabled: bool = True


class TemplateEntryResponse(BaseModel):
    """Template entry response schema."""

    id: int
    doctor_id: UUID
    day_of_week: int
    time_slot_id: int
    start_time: time
    end_time: time
    is_enabled: bool

    model_config = {"from_attributes": True}


# ============================================================================
# Time Blocks
# ============================================================================


class TimeBlockCreate(BaseModel):
    """Remove one slot from a doctor's availability on one date."""

    block_date: date
    time_slot_id: int = Field(..., ge=1)
    reason: str | None = Field(None, min_length=3, max_length=500)


class TimeBlockResponse(BaseModel):
    """Time block response schema."""

    id: int
    doctor_id: UUID
    block_date: date
    time_slot_id: int
    reason: str | None = None
    created_by_user_id: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ============================================================================
# Availability
# ============================================================================


class AvailabilitySlot(BaseModel):
    """Availability of one template-eligible slot on one date."""

    date: date
    slot_id: int
    start_time: time
    end_time: time
    is_available: bool


class AvailabilityResponse(BaseModel):
    """Availability grid for a doctor over an inclusive date range."""

    doctor_id: UUID
    start_date: date
    end_date: date
    slots: list[AvailabilitySlot]
