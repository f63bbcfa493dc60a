"""
tests/test_lifespan.py -- Startup/shutdown wiring and error labels in api/main.py.

The real lifespan runs against a uuid-named shared-memory database with
build_dispatcher patched to return a recording stand-in, so shutdown can be
observed without a network client.
"""

from __future__ import annotations

import asyncio
import uuid

from fastapi import FastAPI

import api.main as api_main
from api.main import _error_label


class ClosableDispatcher:
    def __init__(self) -> None:
        self.closed = False

    def send_password_reset_link(self, email: str, reset_url: str) -> bool:
        return True

    def close(self) -> None:
        self.closed = True


class TestLifespan:
    def _run(self, app: FastAPI) -> None:
        async def cycle() -> None:
            async with api_main.lifespan(app):
                assert app.state.sessions is not None

        asyncio.run(cycle())

    def test_shutdown_closes_dispatcher(self, monkeypatch) -> None:
        dispatcher = ClosableDispatcher()
        monkeypatch.setattr(api_main, "build_dispatcher", lambda settings: dispatcher)
        monkeypatch.setattr(
            api_main.settings,
            "database_url",
            f"sqlite:///file:test_lifespan_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true",
        )
        app = FastAPI()
        self._run(app)
        assert app.state.dispatcher is dispatcher
        assert dispatcher.closed is True

    def test_dispatcher_without_close(self, monkeypatch) -> None:
        """ConsoleDispatcher has no close(); shutdown must not fail on it."""
        monkeypatch.setattr(
            api_main.settings,
            "database_url",
            f"sqlite:///file:test_lifespan_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true",
        )
        self._run(FastAPI())


class TestErrorLabel:
    def test_known_kinds(self) -> None:
        assert _error_label(404) == "not_found"
        assert _error_label(429) == "rate_limited"
        assert _error_label(500) == "internal_error"

    def test_reason_phrase_for_unmapped_status(self) -> None:
        assert _error_label(405) == "method_not_allowed"
        assert _error_label(503) == "service_unavailable"

    def test_unknown_status(self) -> None:
        assert _error_label(599) == "http_error"
