"""API v1 router configuration."""

from fastapi import APIRouter

from consultorio.api.v1.endpoints import (
    appointments,
    audit,
    availability,
    directory,
    health,
    schedule,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(directory.router, tags=["Directory"])
api_router.include_router(schedule.router, tags=["Schedule"])
api_router.include_router(availability.router, tags=["Availability"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(audit.router, tags=["Audit"])
