"""
API request and response models for the job portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Every response, success or failure, uses the same envelope:
    {"success": bool, "data": ..., "error": "<ErrorKind>", "message": "..."}
Absent fields are omitted (routes set response_model_exclude_none).

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import Account, TokenPair
from auth.passwords import password_problems

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Loose: one "@", something on both sides, a dot in the domain.
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


def _check_password(value: str) -> str:
    problems = password_problems(value)
    if problems:
        raise ValueError(problems[0])
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Admin accounts cannot be self-registered; see `main.py create-admin`.
    """

    email: str = Field(max_length=255)
    password: str = Field(max_length=128)
    confirm_password: str = Field(max_length=128)
    role: Literal["employer", "seeker"]
    gdpr_consent: bool = Field(default=False, validate_default=True)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password(value)

    @field_validator("gdpr_consent")
    @classmethod
    def consent_given(cls, value: bool) -> bool:
        if not value:
            raise ValueError("You must accept the privacy policy")
        return value

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. No strength check: old passwords must still log in."""

    email: str = Field(max_length=255)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _check_email(value)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    """Optional body for POST /api/v1/auth/logout. Omit refresh_token to log out everywhere."""

    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: str = Field(max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _check_email(value)


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(max_length=128)
    confirm_password: str = Field(max_length=128)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(max_length=128)
    confirm_password: str = Field(max_length=128)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password(value)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class AccountStatusPatch(BaseModel):
    """Request body for PATCH /api/v1/auth/users/{id}. Admin only."""

    is_active: bool


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: str
    is_active: bool
    email_verified: bool
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "UserOut":
        """Factory Method: the domain -> transport mapping lives beside the model."""
        return cls(
            id=account.id,
            email=account.email,
            role=account.role.value,
            is_active=account.is_active,
            email_verified=account.email_verified,
            created_at=account.created_at,
        )


class TokensOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokensOut":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token, expires_in=pair.expires_in)


class SessionData(BaseModel):
    user: UserOut
    tokens: TokensOut


class TokensData(BaseModel):
    tokens: TokensOut


class UserData(BaseModel):
    user: UserOut


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Uniform response body. error carries an ErrorKind value (or an HTTP reason label) on failure."""

    success: bool = True
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None


class SessionEnvelope(Envelope):
    data: SessionData


class TokensEnvelope(Envelope):
    data: TokensData


class UserEnvelope(Envelope):
    data: UserData


class ExportEnvelope(Envelope):
    data: dict[str, Any]


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str
    version: str
    components: dict[str, str]
