"""Health check endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from consultorio.config import settings
from consultorio.core.redis_client import check_redis_connection
from consultorio.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str
    version: str
    environment: str


class ReadinessResponse(HealthResponse):
    """Readiness response with dependency status."""

    database: str
    cache: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
)
async def health_check() -> HealthResponse:
    """Report that the process is up."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
    summary="Readiness check",
)
async def readiness_check() -> JSONResponse:
    """
    Report whether the service can take bookings.

    The database is required; Redis only backs the slot catalog cache, so an
    unreachable cache degrades the service without making it unready.
    """
    db_healthy = await check_database_connection()
    cache_healthy = await check_redis_connection()

    if not db_healthy:
        overall = "unhealthy"
    elif not cache_healthy:
        overall = "degraded"
    else:
        overall = "healthy"

    body = ReadinessResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database="healthy" if db_healthy else "unhealthy",
        cache="healthy" if cache_healthy else "unhealthy",
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )
