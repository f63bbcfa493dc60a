"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication, role
gating, and rate limiting.

The gate every protected route goes through is authenticate(): it reads an
"Authorization: Bearer <token>" header and verifies it as an ACCESS token
with the TokenCodec on app.state. Verification is stateless; no database
lookup happens per request. A deactivated account keeps working until its
access token expires, and cannot refresh after that.

optional_authenticate() is the soft variant (returns None on failure).
require_roles(*roles) wraps authenticate() and raises 403 for other roles.
rate_limit(bucket) counts the request against a RatePolicy and raises 429
once the client's window is spent.

All failures raise AuthError; api/main.py turns it into the envelope.

Layer rule: no imports from api/, profiles/, or notify/.
  auth/dependencies.py may import from fastapi (for Depends/Request/Response)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional

from fastapi import Depends, Request, Response

from auth.errors import AuthError, ErrorKind, TokenError
from auth.models import AccountIdentity, Role, TokenType
from auth.rate_guard import RateDecision, RateGuard, RatePolicy, client_identity

logger = logging.getLogger("jobportal.auth")


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[7:].strip() or None
    return None


def authenticate(request: Request) -> AccountIdentity:
    """Require a valid access token. Raises AuthError(UNAUTHORIZED) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: AccountIdentity = Depends(authenticate)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise AuthError(ErrorKind.UNAUTHORIZED, "Authentication required")
    try:
        return request.app.state.token_codec.verify(token, TokenType.ACCESS)
    except TokenError as exc:
        logger.info("Access token rejected on %s: %s", request.url.path, exc.reason.value)
        raise


def optional_authenticate(request: Request) -> Optional[AccountIdentity]:
    """Return the caller's identity when a valid access token is present, else None.

    Never raises. For public endpoints that only personalize output.
    """
    token = _bearer_token(request)
    if token is None:
        return None
    try:
        return request.app.state.token_codec.verify(token, TokenType.ACCESS)
    except TokenError:
        return None


def require_roles(*roles: Role) -> Callable[..., AccountIdentity]:
    """Build a dependency that admits only the given roles.

    Raises 401 if unauthenticated, 403 if authenticated with another role.
    """
    allowed = frozenset(roles)

    def dependency(identity: AccountIdentity = Depends(authenticate)) -> AccountIdentity:
        if identity.role not in allowed:
            raise AuthError(ErrorKind.FORBIDDEN, "Insufficient permissions")
        return identity

    return dependency


admin_only = require_roles(Role.ADMIN)
employer_only = require_roles(Role.EMPLOYER, Role.ADMIN)
seeker_only = require_roles(Role.SEEKER, Role.ADMIN)


def rate_limit(bucket: str) -> Callable[..., RateDecision]:
    """Build a dependency that counts the request against a named RatePolicy.

    Allowed requests get X-RateLimit-* headers on the response. The request
    that exhausts the window gets 429 with the same headers plus Retry-After.

    Use as a FastAPI dependency:
        @router.post("/auth/login", dependencies=[Depends(rate_limit("auth"))])
    """

    def dependency(request: Request, response: Response) -> RateDecision:
        guard: RateGuard = request.app.state.rate_guard
        policy: RatePolicy = request.app.state.rate_policies[bucket]
        client = client_identity(request.headers, request.client.host if request.client else None)
        decision = guard.check_policy(policy, client)
        headers = decision.headers()
        if not decision.allowed:
            headers["Retry-After"] = str(max(1, decision.reset_seconds))
            raise AuthError(ErrorKind.RATE_LIMITED, "Too many requests, please try again later", headers=headers)
        response.headers.update(headers)
        return decision

    return dependency
