"""
tests/conftest.py -- Shared test fixtures for the job portal tests.

This module provides:
  - make_test_db(): isolated named shared-memory SQLite database
  - FakeClock: injectable clock so expiry tests move time instead of sleeping
  - RecordingDispatcher: captures reset links instead of sending mail
  - _patch_lifespan(): wires a test database into app.state via configure_state
  - api_client: TestClient + admin access token + admin id
  - reset_rate_limits (autouse): every test starts with empty rate windows

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers and run_in_threadpool calls in worker
threads. Plain :memory: DBs are per-connection and would present a blank
schema to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The DEBUG env var must be set before any core/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set env before any api/auth/core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost", "127.0.0.1"]')
os.environ.setdefault("EMAIL_PROVIDER", "console")

import pytest
from fastapi.testclient import TestClient

from api.main import app, configure_state
from auth.models import AccountIdentity, TokenType
from auth.tokens import TokenCodec
from core.config import get_settings
from core.db import Database
from main import create_admin

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adm1nPassword"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_test_db(db_suffix: str) -> Database:
    """Create an isolated named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'sessions').
    """
    return Database(f"sqlite:///file:test_jobportal_{db_suffix}?mode=memory&cache=shared&uri=true")


class FakeClock:
    """Callable clock for TokenCodec and SessionOrchestrator. advance() moves time forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2030, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingDispatcher:
    """Stands in for the email provider; keeps every (email, reset_url) pair."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_password_reset_link(self, email: str, reset_url: str) -> bool:
        self.sent.append((email, reset_url))
        return True


def _patch_lifespan(db: Database, dispatcher: RecordingDispatcher):
    """Return an async context manager that replaces the real lifespan.

    Builds the production object graph with configure_state() but on the
    test database and with a recording dispatcher, so no mail is sent.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        configure_state(app, get_settings(), db, dispatcher)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="module")
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture(scope="module")
def api_client(
    request: pytest.FixtureRequest, dispatcher: RecordingDispatcher
) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory database.
    The admin account is created before the client starts and a long-lived
    access token is issued for it directly. Each test module gets its own
    database, named after the module.
    """
    db = make_test_db(request.module.__name__.rsplit(".", 1)[-1])
    admin = create_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    codec = TokenCodec(get_settings().secret_key)
    token = codec.issue(AccountIdentity(id=admin.id, email=admin.email, role=admin.role), TokenType.ACCESS, "1h")

    app.router.lifespan_context = _patch_lifespan(db, dispatcher)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    db.close()


@pytest.fixture(autouse=True)
def reset_rate_limits() -> Generator[None, None, None]:
    """Give every test a fresh set of rate windows."""
    guard = getattr(app.state, "rate_guard", None)
    if guard is not None:
        guard.reset()
    yield
    guard = getattr(app.state, "rate_guard", None)
    if guard is not None:
        guard.reset()
