"""Shared metadata and portable column types for all tables."""

from sqlalchemy import JSON, BigInteger, Integer, MetaData
from sqlalchemy.dialects.postgresql import JSONB

# One metadata so composite foreign keys resolve across modules
metadata = MetaData()

# BIGINT identity on PostgreSQL, INTEGER rowid alias on SQLite (autoincrement)
IdType = BigInteger().with_variant(Integer, "sqlite")

JSONType = JSON().with_variant(JSONB(), "postgresql")
