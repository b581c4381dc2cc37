"""
Guardian Shield - Database module.

SQLAlchemy models, async engine/session management and Alembic migrations.
"""

from database.connection import (
    AsyncSessionLocal,
    close_db,
    engine,
    get_async_session,
    check_connection,
)

__all__ = [
    "engine",
    "AsyncSessionLocal",
    "get_async_session",
    "check_connection",
    "close_db",
]
