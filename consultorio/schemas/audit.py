"""Audit log schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AuditEntryResponse(BaseModel):
    """One append-only audit record."""

    id: int
    occurred_at: datetime
    actor_user_id: int | None
    action_code: str
    module: str
    object_table: str
    object_pk: dict[str, Any]
    success: bool
    failure_reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class AuditFilters(BaseModel):
    """Schema for audit log filtering."""

    object_table: str | None = None
    action_code: str | None = None
    actor_user_id: int | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=200)


class AuditListResponse(BaseModel):
    """Paginated audit log."""

    total: int
    page: int
    page_size: int
    items: list[AuditEntryResponse]
