"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, Uuid
from sqlalchemy.types import TypeDecorator

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# SQLite only autoincrements INTEGER PRIMARY KEY columns
SequenceIdType = BigInteger().with_variant(Integer, "sqlite")


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime that always round-trips as UTC.

    PostgreSQL stores TIMESTAMPTZ natively; SQLite drops tzinfo, so values
    read back from it are re-tagged as UTC. Naive values written by callers
    are assumed to already be UTC.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
