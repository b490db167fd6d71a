"""Audit log endpoints."""

from fastapi import APIRouter, Query, status

from consultorio.dependencies import CurrentActor, DatabaseSession
from consultorio.schemas.audit import AuditFilters, AuditListResponse
from consultorio.services.audit_service import AuditRecorder
from consultorio.services.authorization import AccessPolicy

router = APIRouter()


@router.get(
    "/audit",
    response_model=AuditListResponse,
    status_code=status.HTTP_200_OK,
    summary="List audit entries",
)
async def list_audit_entries(
    actor: CurrentActor,
    db: DatabaseSession,
    object_table: str | None = Query(None),
    action_code: str | None = Query(None),
    actor_user_id: int | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
) -> AuditListResponse:
    """
    List audit entries, newest first. Staff or admin only.

    The log is read-only; there is no endpoint that edits or removes entries.
    """
    AccessPolicy(actor).ensure_privileged()

    filters = AuditFilters(
        object_table=object_table,
        action_code=action_code,
        actor_user_id=actor_user_id,
        page=page,
        page_size=page_size,
    )
    return await AuditRecorder(db).list_entries(filters)
