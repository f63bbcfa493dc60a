"""
api/routes/v1/auth.py -- Credential and session REST endpoints.

Routes:
  POST   /api/v1/auth/register         -- create employer/seeker account; 201 + token pair
  POST   /api/v1/auth/login            -- email + password; token pair
  POST   /api/v1/auth/refresh          -- spend a refresh token for a new pair
  POST   /api/v1/auth/logout           -- revoke one refresh token, or all of them (requires auth)
  POST   /api/v1/auth/forgot-password  -- email a reset link; same answer for unknown emails
  POST   /api/v1/auth/reset-password   -- redeem a reset token; ends every session
  POST   /api/v1/auth/change-password  -- requires auth; ends every session
  GET    /api/v1/auth/me               -- current account (requires auth)
  DELETE /api/v1/auth/account          -- erase the caller's account (requires auth)
  GET    /api/v1/auth/export           -- caller's stored data (requires auth)
  PATCH  /api/v1/auth/users/{id}       -- activate / deactivate an account (admin only)

Security:
  Every credential-accepting route is behind the "auth" rate bucket; the
  authenticated account routes use the "api" bucket.
  Cache-Control: no-store on every response that carries tokens.
  Flows live in auth/sessions.py. Handlers only translate HTTP <-> flow calls.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.models import (
    AccountStatusPatch,
    ChangePasswordRequest,
    Envelope,
    ExportEnvelope,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionData,
    SessionEnvelope,
    TokensData,
    TokensEnvelope,
    TokensOut,
    UserData,
    UserEnvelope,
    UserOut,
)
from auth.dependencies import admin_only, authenticate, rate_limit
from auth.models import AccountIdentity, Role, SessionResult
from auth.sessions import SessionOrchestrator

# Auth policy:
# - POST   /auth/register, /auth/login, /auth/refresh:           public, "auth" bucket
# - POST   /auth/forgot-password, /auth/reset-password:          public, "auth" bucket
# - POST   /auth/change-password:                                requires auth, "auth" bucket
# - POST   /auth/logout, GET /auth/me, GET /auth/export:         requires auth, "api" bucket
# - DELETE /auth/account:                                        requires auth, "api" bucket
# - PATCH  /auth/users/{id}:                                     requires admin, "api" bucket
router = APIRouter(prefix="/auth")

auth_bucket = Depends(rate_limit("auth"))
api_bucket = Depends(rate_limit("api"))


def _sessions(request: Request) -> SessionOrchestrator:
    return request.app.state.sessions


def _session_envelope(result: SessionResult, message: str) -> SessionEnvelope:
    return SessionEnvelope(
        data=SessionData(user=UserOut.from_account(result.account), tokens=TokensOut.from_pair(result.tokens)),
        message=message,
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/register",
    response_model=SessionEnvelope,
    response_model_exclude_none=True,
    status_code=201,
    dependencies=[auth_bucket],
)
async def register(request: Request, response: Response, body: RegisterRequest) -> SessionEnvelope:
    """Create an account, its empty profile, and a first session in one step."""
    result = await _sessions(request).register(body.email, body.password, Role(body.role), body.gdpr_consent)
    response.headers["Cache-Control"] = "no-store"
    return _session_envelope(result, "Registration successful")


@router.post("/login", response_model=SessionEnvelope, response_model_exclude_none=True, dependencies=[auth_bucket])
async def login(request: Request, response: Response, body: LoginRequest) -> SessionEnvelope:
    """Authenticate with email and password.

    The same 401 message is returned for an unknown email and a wrong
    password; a deactivated account gets 403 only after its password checks out.
    """
    result = await _sessions(request).login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return _session_envelope(result, "Login successful")


@router.post("/refresh", response_model=TokensEnvelope, response_model_exclude_none=True, dependencies=[auth_bucket])
async def refresh(request: Request, response: Response, body: RefreshRequest) -> TokensEnvelope:
    """Rotate a refresh token. The presented token stops working immediately."""
    pair = await _sessions(request).refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return TokensEnvelope(data=TokensData(tokens=TokensOut.from_pair(pair)))


@router.post("/forgot-password", response_model=Envelope, response_model_exclude_none=True, dependencies=[auth_bucket])
async def forgot_password(request: Request, body: ForgotPasswordRequest) -> Envelope:
    message = await _sessions(request).forgot_password(body.email)
    return Envelope(message=message)


@router.post("/reset-password", response_model=Envelope, response_model_exclude_none=True, dependencies=[auth_bucket])
async def reset_password(request: Request, body: ResetPasswordRequest) -> Envelope:
    await _sessions(request).reset_password(body.token, body.password)
    return Envelope(message="Password reset successfully. Please login with your new password.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/logout", response_model=Envelope, response_model_exclude_none=True, dependencies=[api_bucket])
async def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    identity: AccountIdentity = Depends(authenticate),
) -> Envelope:
    """Revoke the given refresh token, or every session when none is sent."""
    await _sessions(request).logout(identity, body.refresh_token if body is not None else None)
    return Envelope(message="Logged out successfully")


@router.post("/change-password", response_model=Envelope, response_model_exclude_none=True, dependencies=[auth_bucket])
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: AccountIdentity = Depends(authenticate),
) -> Envelope:
    """Change password and end every session, this one included."""
    await _sessions(request).change_password(identity, body.current_password, body.new_password)
    return Envelope(message="Password changed successfully")


@router.get("/me", response_model=UserEnvelope, response_model_exclude_none=True, dependencies=[api_bucket])
async def me(request: Request, identity: AccountIdentity = Depends(authenticate)) -> UserEnvelope:
    """Return the live account record for the authenticated caller."""
    account = await _sessions(request).who_am_i(identity)
    return UserEnvelope(data=UserData(user=UserOut.from_account(account)))


@router.delete("/account", response_model=Envelope, response_model_exclude_none=True, dependencies=[api_bucket])
async def delete_account(request: Request, identity: AccountIdentity = Depends(authenticate)) -> Envelope:
    """Erase the caller's account. Profile and sessions are removed with it."""
    await _sessions(request).delete_account(identity)
    return Envelope(message="Account deleted successfully")


@router.get("/export", response_model=ExportEnvelope, response_model_exclude_none=True, dependencies=[api_bucket])
async def export_data(request: Request, identity: AccountIdentity = Depends(authenticate)) -> ExportEnvelope:
    """Return everything stored about the caller (data portability)."""
    return ExportEnvelope(data=await _sessions(request).export_data(identity))


# ---------------------------------------------------------------------------
# Account administration (admin only)
# ---------------------------------------------------------------------------


@router.patch(
    "/users/{account_id}",
    response_model=UserEnvelope,
    response_model_exclude_none=True,
    dependencies=[api_bucket],
)
async def update_account_status(
    request: Request,
    account_id: str,
    body: AccountStatusPatch,
    actor: AccountIdentity = Depends(admin_only),
) -> UserEnvelope:
    """Activate or deactivate an account. Admins cannot deactivate themselves.

    Deactivation revokes the target's refresh tokens; access tokens already
    issued stay valid until they expire.
    """
    account = await _sessions(request).set_active(actor, account_id, body.is_active)
    return UserEnvelope(data=UserData(user=UserOut.from_account(account)))
