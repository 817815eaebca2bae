"""Core plumbing: configuration, database sessions, request dependencies."""

from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    create_session_factory,
    engine,
    get_session,
    init_db,
)
from .dependencies import AdminDep, SessionDep, get_current_admin

__all__ = [
    "Settings",
    "get_settings",
    "engine",
    "async_session_factory",
    "create_session_factory",
    "get_session",
    "init_db",
    "close_db",
    "get_current_admin",
    "AdminDep",
    "SessionDep",
]
