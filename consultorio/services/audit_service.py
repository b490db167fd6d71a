"""Append-only audit trail for privileged writes."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi.encoders import jsonable_encoder
from sqlalchemy import and_, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from consultorio.core.exceptions import AuditWriteException
from consultorio.models.audit import audit_log
from consultorio.schemas.audit import AuditEntryResponse, AuditFilters, AuditListResponse
from consultorio.schemas.context import ActorContext

logger = structlog.get_logger()

MODULE_APPOINTMENTS = "APPOINTMENTS"
MODULE_AVAILABILITY = "AVAILABILITY"


def snapshot(row: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Render a table row as a JSON-safe dict for the audit details."""
    if row is None:
        return None
    return jsonable_encoder(dict(row))


class AuditRecorder:
    """
    Writer and reader for the audit log.

    ``record`` is the only write path. The recorder offers no way to change
    or remove an entry once written, and the statement guard in
    ``consultorio.models.audit`` rejects UPDATE/DELETE issued elsewhere.

    Entries are written through the caller's session, so they commit or roll
    back together with the mutation they describe. A failed write raises
    ``AuditWriteException`` and the mutation must not commit.
    """

    def __init__(self, db: AsyncSession):
        """Initialize recorder with database session."""
        self.db = db

    async def record(
        self,
        *,
        context: ActorContext,
        action_code: str,
        module: str,
        object_table: str,
        object_pk: dict[str, Any],
        old: Mapping[str, Any] | None = None,
        new: Mapping[str, Any] | None = None,
        success: bool = True,
        failure_reason: str | None = None,
    ) -> int:
        """
        Append one audit entry.

        Args:
            context: Acting identity and request metadata
            action_code: Action code, e.g. ``APPOINTMENT_UPDATE``
            module: Functional area of the write
            object_table: Table that was written
            object_pk: Key of the affected row
            old: Row before the write, if any
            new: Row after the write, if any
            success: Whether the audited action succeeded
            failure_reason: Why it failed, when ``success`` is False

        Returns:
            Id of the new audit entry

        Raises:
            AuditWriteException: If the entry could not be persisted
        """
        values = {
            "occurred_at": datetime.now(UTC),
            "actor_user_id": context.user_id,
            "action_code": action_code,
            "module": module,
            "object_table": object_table,
            "object_pk": jsonable_encoder(object_pk),
            "success": success,
            "failure_reason": failure_reason,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
            "request_id": context.request_id,
            "details": {"old": snapshot(old), "new": snapshot(new)},
        }

        try:
            return await self._write(values)
        except SQLAlchemyError as e:
            logger.error(
                "audit_write_failed",
                action_code=action_code,
                object_table=object_table,
                object_pk=values["object_pk"],
                error=str(e),
            )
            raise AuditWriteException(str(e)) from e

    async def _write(self, values: dict[str, Any]) -> int:
        result = await self.db.execute(insert(audit_log).values(**values).returning(audit_log.c.id))
        return result.scalar_one()

    async def list_entries(self, filters: AuditFilters) -> AuditListResponse:
        """
        List audit entries, newest first.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated audit entries
        """
        conditions = []

        if filters.object_table:
            conditions.append(audit_log.c.object_table == filters.object_table)

        if filters.action_code:
            conditions.append(audit_log.c.action_code == filters.action_code)

        if filters.actor_user_id is not None:
            conditions.append(audit_log.c.actor_user_id == filters.actor_user_id)

        where_clause = and_(*conditions) if conditions else True

        count_stmt = select(func.count()).select_from(audit_log).where(where_clause)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(audit_log)
            .where(where_clause)
            .order_by(audit_log.c.occurred_at.desc(), audit_log.c.id.desc())
            .limit(filters.page_size)
            .offset(offset)
        )
        rows = (await self.db.execute(stmt)).mappings().all()

        return AuditListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AuditEntryResponse.model_validate(dict(row)) for row in rows],
        )
