"""Database layer - engine, base classes, and column types."""

from marketplace_kernel.db.base import (
    UUID,
    Base,
    EnumString,
    TrackedBase,
    UTCDateTime,
    UUIDString,
)
from marketplace_kernel.db.engine import create_tables, get_engine, get_session
from marketplace_kernel.db.types import ExternalId, Hours, Money

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "EnumString",
    "UTCDateTime",
    "UUIDString",
    "UUID",
    "Money",
    "Hours",
    "ExternalId",
]
