"""Append-only audit log table and the statement guard that protects it."""

from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Table,
    Text,
    event,
    func,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.sql.dml import Delete, Update

from consultorio.core.exceptions import ImmutableRecordException
from consultorio.models.metadata import IdType, JSONType, metadata

audit_log = Table(
    "audit_log",
    metadata,
    Column("id", IdType, primary_key=True, autoincrement=True),
    Column("occurred_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("actor_user_id", IdType, nullable=True),
    Column("action_code", Text, nullable=False),
    Column("module", Text, nullable=False),
    Column("object_table", Text, nullable=False),
    Column("object_pk", JSONType, nullable=False),
    Column("success", Boolean, nullable=False, server_default=text("true")),
    Column("failure_reason", Text, nullable=True),
    Column("ip_address", Text, nullable=True),
    Column("user_agent", Text, nullable=True),
    Column("request_id", Text, nullable=True),
    Column("details", JSONType, nullable=False),
    CheckConstraint(
        "length(action_code) BETWEEN 3 AND 80",
        name="audit_log_action_code_length_check",
    ),
    CheckConstraint("length(module) BETWEEN 2 AND 40", name="audit_log_module_length_check"),
)

Index("ix_audit_log_occurred_at", audit_log.c.occurred_at)
Index("ix_audit_log_actor_occurred_at", audit_log.c.actor_user_id, audit_log.c.occurred_at)
Index("ix_audit_log_action_occurred_at", audit_log.c.action_code, audit_log.c.occurred_at)

APPEND_ONLY_TABLES = frozenset({"audit_log", "appointment_status_events"})


@event.listens_for(Engine, "before_execute")
def reject_append_only_mutations(
    conn: Any,
    clauseelement: Any,
    multiparams: Any,
    params: Any,
    execution_options: Any,
) -> None:
    """Refuse UPDATE and DELETE statements aimed at append-only tables."""
    if isinstance(clauseelement, Update | Delete):
        table_name = getattr(clauseelement.table, "name", None)
        if table_name in APPEND_ONLY_TABLES:
            raise ImmutableRecordException(table_name)
