"""Database layer: declarative base, engine/session management, ORM listeners."""

from billing_kernel.db.base import Base, TrackedBase, UUIDString
from billing_kernel.db.engine import (
    create_tables,
    enable_sqlite_savepoints,
    get_engine,
    get_session,
    init_engine_from_url,
    install_session_callback,
    remove_session_callback,
    reset_engine,
    session_scope,
)
from billing_kernel.db.immutability import (
    allow_location_edit,
    register_immutability_listeners,
    unregister_immutability_listeners,
)

register_immutability_listeners()

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "allow_location_edit",
    "create_tables",
    "enable_sqlite_savepoints",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "install_session_callback",
    "register_immutability_listeners",
    "remove_session_callback",
    "reset_engine",
    "session_scope",
    "unregister_immutability_listeners",
]
