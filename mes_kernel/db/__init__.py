"""Database layer - engine, base classes and session scope."""

from mes_kernel.db.base import Base, TrackedBase
from mes_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
