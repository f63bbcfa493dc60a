"""
tests/test_dependencies.py -- Tests for the Depends() gates in auth/dependencies.py.

A throwaway FastAPI app mounts one route per gate, the same way the job,
profile and application routers use them. Only a TokenCodec is needed on
app.state; authentication never touches the database.
"""

from __future__ import annotations

from typing import Optional

import pytest
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from auth.dependencies import authenticate, employer_only, optional_authenticate, seeker_only
from auth.errors import AuthError
from auth.models import AccountIdentity, Role, TokenType
from auth.tokens import TokenCodec

SECRET = "d" * 48
CODEC = TokenCodec(SECRET)


def _token(role: Role, token_type: TokenType = TokenType.ACCESS) -> str:
    return CODEC.issue(AccountIdentity(id=f"{role.value}-1", email=f"{role.value}@x.com", role=role), token_type, "15m")


@pytest.fixture(scope="module")
def client() -> TestClient:
    app = FastAPI()
    app.state.token_codec = CODEC

    @app.exception_handler(AuthError)
    async def _auth_error(request, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=exc.kind.status_code, content={"message": exc.message})

    @app.get("/me")
    def me(identity: AccountIdentity = Depends(authenticate)):
        return {"id": identity.id}

    @app.get("/jobs")
    def jobs(identity: Optional[AccountIdentity] = Depends(optional_authenticate)):
        return {"personalized": identity is not None}

    @app.post("/jobs")
    def post_job(identity: AccountIdentity = Depends(employer_only)):
        return {"role": identity.role.value}

    @app.post("/applications")
    def apply(identity: AccountIdentity = Depends(seeker_only)):
        return {"role": identity.role.value}

    return TestClient(app)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestAuthenticate:
    def test_valid_access_token(self, client: TestClient) -> None:
        resp = client.get("/me", headers=_bearer(_token(Role.SEEKER)))
        assert resp.json() == {"id": "seeker-1"}

    def test_missing_header(self, client: TestClient) -> None:
        resp = client.get("/me")
        assert resp.status_code == 401
        assert resp.json()["message"] == "Authentication required"

    def test_non_bearer_scheme(self, client: TestClient) -> None:
        resp = client.get("/me", headers={"Authorization": f"Basic {_token(Role.SEEKER)}"})
        assert resp.status_code == 401

    def test_refresh_token_rejected(self, client: TestClient) -> None:
        resp = client.get("/me", headers=_bearer(_token(Role.SEEKER, TokenType.REFRESH)))
        assert resp.status_code == 401


class TestOptionalAuthenticate:
    def test_anonymous(self, client: TestClient) -> None:
        assert client.get("/jobs").json() == {"personalized": False}

    def test_bad_token_is_anonymous(self, client: TestClient) -> None:
        assert client.get("/jobs", headers=_bearer("garbage")).json() == {"personalized": False}

    def test_logged_in(self, client: TestClient) -> None:
        assert client.get("/jobs", headers=_bearer(_token(Role.SEEKER))).json() == {"personalized": True}


class TestRoleGates:
    @pytest.mark.parametrize(
        "path, role, status",
        [
            ("/jobs", Role.EMPLOYER, 200),
            ("/jobs", Role.ADMIN, 200),
            ("/jobs", Role.SEEKER, 403),
            ("/applications", Role.SEEKER, 200),
            ("/applications", Role.ADMIN, 200),
            ("/applications", Role.EMPLOYER, 403),
        ],
    )
    def test_gate(self, client: TestClient, path: str, role: Role, status: int) -> None:
        resp = client.post(path, headers=_bearer(_token(role)))
        assert resp.status_code == status

    def test_unauthenticated_is_401_not_403(self, client: TestClient) -> None:
        assert client.post("/jobs").status_code == 401
