"""Database layer - engine, base classes, and types."""

from compensation_kernel.db.base import UUID, Base, TenantScopedBase, UUIDString
from compensation_kernel.db.engine import create_tables, get_engine, get_session

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TenantScopedBase",
    "UUIDString",
    "UUID",
]
