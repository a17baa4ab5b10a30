"""Database layer - engine, base classes, types, and immutability."""

from inventory_kernel.db.base import UUID, Base, UTCDateTime, UUIDString
from inventory_kernel.db.engine import create_tables, get_engine, get_session

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
