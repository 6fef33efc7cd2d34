"""
Database module.
Contains database connection, models, and repository implementations.
"""

from entryflow.db.connection import (
    close_db,
    get_engine,
    get_session_factory,
    init_db,
    make_session_factory,
    session_scope,
)
from entryflow.db.models import Base, Entry

__all__ = [
    "get_session_factory",
    "get_engine",
    "init_db",
    "close_db",
    "make_session_factory",
    "session_scope",
    "Entry",
    "Base",
]
