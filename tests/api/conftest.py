"""App-level fixtures: the real FastAPI app over an in-memory store."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.config import Config, config
from src.database import get_db
from src.main import app, build_services
from tests.fakes import FakeSynthesizer, FakeTextGenerator

ADMIN_TOKEN = "test-admin-token-0123456789abcdef"


@pytest.fixture()
def api_config() -> Config:
    cfg = Config()
    cfg.free_tier_speeches = 3
    cfg.anonymous_monthly_limit = 2
    cfg.pool_cache_ttl_seconds = 0
    cfg.residential_proxy_username = ""
    cfg.residential_proxy_password = ""
    return cfg


@pytest.fixture()
def client(session_factory, api_config, monkeypatch):
    monkeypatch.setattr(config, "admin_token", ADMIN_TOKEN)
    build_services(app, session_factory, api_config)
    app.state.orchestrator.text_generator = FakeTextGenerator()
    app.state.orchestrator.synthesizer = FakeSynthesizer()

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    # No context manager: the lifespan (real database, scheduler) stays off
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN}
