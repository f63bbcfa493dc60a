"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
orchestrator do the work; these only own the shape.

Layer rule: no imports from api/, profiles/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYER = "employer"
    SEEKER = "seeker"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class PurposeTag(str, Enum):
    """What a ledger row is for.

    Login refresh tokens and password-reset credentials share the
    refresh_tokens table. The purpose is a real column so a lookup for one
    purpose can never match a row written for the other.
    """

    LOGIN_REFRESH = "login_refresh"
    PASSWORD_RESET = "password_reset"


@dataclass
class Account:
    """A registrant. email is always stored lower-cased.

    id is assigned by the session orchestrator before insert (opaque UUID
    string) so the profile stub and first refresh token can reference it in
    the same transaction.
    """

    email: str
    password_hash: str
    role: Role
    id: str = ""
    is_active: bool = True
    email_verified: bool = False
    gdpr_consent: bool = False
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass(frozen=True)
class AccountIdentity:
    """Who a verified token says the caller is. Reconstructed, never stored."""

    id: str
    email: str
    role: Role


@dataclass
class RefreshTokenRecord:
    """One outstanding single-use credential.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token is never
    persisted, so reading the table does not yield a usable credential.
    """

    account_id: str
    token_hash: str
    expires_at: str  # ISO 8601 UTC
    purpose: PurposeTag = PurposeTag.LOGIN_REFRESH
    id: str = ""
    created_at: str = ""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime, seconds


@dataclass(frozen=True)
class SessionResult:
    """Returned by register and login: the account plus its fresh token pair."""

    account: Account
    tokens: TokenPair
