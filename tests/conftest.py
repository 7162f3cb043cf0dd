"""
DocTrack Test Suite — Shared fixtures and configuration.

Every test gets a fresh in-memory SQLite database (StaticPool, foreign
keys enforced) and bcrypt at its minimum cost.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from doctrack.db.session import close_all_sessions, init_db
from doctrack.engine.config import (
    DatabaseConfig,
    LoggingConfig,
    SecurityConfig,
    ServiceConfig,
)
from doctrack.engine.security import TokenService
from doctrack.users.service import UserService

TEST_PASSWORD = "123456"


# ---------------------------------------------------------------------------
# Global state isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch):
    """Reset config / logging singletons between tests."""
    import doctrack.engine.config as cfg_mod
    import doctrack.engine.logging as log_mod

    for name in ("DOCTRACK_DATABASE_URL", "DOCTRACK_JWT_SECRET", "DOCTRACK_JWT_REFRESH_SECRET",
                 "DOCTRACK_ENVIRONMENT", "DOCTRACK_FRONTEND_URL", "DOCTRACK_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    cfg_mod._config = None
    yield
    log_mod.shutdown_logging()
    cfg_mod._config = None


# ---------------------------------------------------------------------------
# Config / database
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path) -> ServiceConfig:
    return ServiceConfig(
        database=DatabaseConfig(url="sqlite://"),
        security=SecurityConfig(bcrypt_rounds=4),
        logging=LoggingConfig(enabled=False, directory=str(tmp_path / "logs")),
    )


@pytest.fixture
def session_factory():
    factory = init_db("sqlite://", create_tables=True)
    yield factory
    close_all_sessions()


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def tokens(config) -> TokenService:
    return TokenService.from_config(config.security)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(session):
    """Factory: make_user("alice") creates and commits a user."""
    service = UserService(session, bcrypt_rounds=4)

    def _make(username: str, role: str = "user", name: str = None, password: str = TEST_PASSWORD):
        return service.create_user({
            "name": name or username.title(),
            "username": username,
            "password": password,
            "role": role,
        })

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", role="admin", name="Admin User")


@pytest.fixture
def u1(make_user):
    return make_user("somchai", name="Somchai")


@pytest.fixture
def u2(make_user):
    return make_user("sumitra", name="Sumitra")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def app(config, session_factory):
    from doctrack.api.app import create_app

    return create_app(config=config, session_factory=session_factory)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def login(client):
    """Factory: login("admin") returns the /api/login response body."""

    def _login(username: str, password: str = TEST_PASSWORD) -> Dict[str, Any]:
        resp = client.post("/api/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _login


@pytest.fixture
def auth_headers(admin, login) -> Dict[str, str]:
    body = login("admin")
    return {"Authorization": f"Bearer {body['token']}"}
