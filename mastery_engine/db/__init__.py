"""Database layer: SQLAlchemy models, engine and session helpers."""

from mastery_engine.db.database import (
    configure_database,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    session_scope,
)

__all__ = [
    "configure_database",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "session_scope",
]
