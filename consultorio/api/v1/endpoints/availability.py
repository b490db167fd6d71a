"""Availability endpoint."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from consultorio.dependencies import CurrentActor, DatabaseSession
from consultorio.schemas.schedule import AvailabilityResponse
from consultorio.services.availability_service import AvailabilityService

router = APIRouter()


@router.get(
    "/doctors/{doctor_id}/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a doctor's availability",
)
async def get_availability(
    doctor_id: UUID,
    actor: CurrentActor,
    db: DatabaseSession,
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> AvailabilityResponse:
    """
    Compute the availability grid for a doctor.

    Every slot the weekly template offers within [start_date, end_date] is
    returned with ``is_available`` false when it is blocked or actively
    booked. Dates are the clinic's local calendar dates.

    Args:
        doctor_id: Doctor public id
        actor: Authenticated actor
        db: Database session
        start_date: First date, inclusive
        end_date: Last date, inclusive

    Returns:
        Slots ordered by date then start time
    """
    slots = await AvailabilityService(db).get_availability(doctor_id, start_date, end_date)
    return AvailabilityResponse(
        doctor_id=doctor_id,
        start_date=start_date,
        end_date=end_date,
        slots=slots,
    )
