from .database import (
    build_engine,
    create_session,
    get_db,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    "build_engine",
    "create_session",
    "get_db",
    "get_engine",
    "get_session_factory",
    "init_db",
]
