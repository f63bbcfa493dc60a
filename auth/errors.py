"""
auth/errors.py -- Tagged error types for the credential and session subsystem.

Every failure a flow can report carries an explicit ErrorKind. The HTTP layer
maps kind -> status code and never inspects message text, so rewording a
message cannot change how an error is classified.

Messages on UNAUTHORIZED errors from login and refresh are kept
generic. The specific reason (e.g. which of the four token failures occurred)
is carried separately for logging and is never sent to the client.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    NOT_CONFIGURED = "not_configured"
    INTERNAL = "internal_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
    ErrorKind.NOT_CONFIGURED: 501,
}


class AuthError(Exception):
    """A flow failure with an explicit category.

    headers are copied onto the HTTP response (e.g. Retry-After on 429).
    """

    def __init__(self, kind: ErrorKind, message: str, *, headers: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.headers = headers or {}


class TokenFailure(str, Enum):
    MALFORMED = "malformed"
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"


_TOKEN_MESSAGES: dict[TokenFailure, str] = {
    TokenFailure.MALFORMED: "Invalid token",
    TokenFailure.SIGNATURE_INVALID: "Invalid token",
    TokenFailure.EXPIRED: "Token has expired",
    TokenFailure.WRONG_TYPE: "Invalid token type",
}


class TokenError(AuthError):
    """Token verification failed. Always UNAUTHORIZED; reason says why."""

    def __init__(self, reason: TokenFailure) -> None:
        super().__init__(ErrorKind.UNAUTHORIZED, _TOKEN_MESSAGES[reason])
        self.reason = reason
