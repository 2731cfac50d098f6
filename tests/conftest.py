"""Shared fixtures: an in-memory SQLite store per test."""

from __future__ import annotations

import pytest
from sqlalchemy.orm import sessionmaker

from src.database.database import build_engine, init_db


@pytest.fixture()
def engine():
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)
