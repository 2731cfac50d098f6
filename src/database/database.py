"""
Database engine and session management.
"""

from __future__ import annotations

from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import config
from src.core.logger import logger

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def build_engine(database_url: str, statement_timeout_seconds: float | None = None) -> Engine:
    """Create an engine suited to *database_url*.

    SQLite in-memory databases share a single connection so every session
    (including ones used from worker threads) sees the same data. PostgreSQL
    connections carry a server-side ``statement_timeout`` so no store call can
    hang indefinitely.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    connect_args: dict[str, Any] = {}
    if statement_timeout_seconds and database_url.startswith("postgresql"):
        timeout_ms = int(statement_timeout_seconds * 1000)
        connect_args["options"] = f"-c statement_timeout={timeout_ms}"

    return create_engine(
        database_url,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_timeout=config.db_pool_timeout,
        pool_recycle=config.db_pool_recycle,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine(config.database_url, config.pool_store_timeout_seconds)
        logger.info("Database engine initialised ({})", _engine.dialect.name)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _session_factory


def create_session() -> Session:
    """Open a new session; the caller must close it."""
    return get_session_factory()()


def init_db(engine: Engine | None = None) -> None:
    """Create missing tables (development and tests; production uses Alembic)."""
    from src.models.database import Base

    target = engine or get_engine()
    Base.metadata.create_all(bind=target)
    logger.info("Database tables ensured")


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    db = create_session()
    try:
        yield db
    finally:
        db.close()
