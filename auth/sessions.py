"""
auth/sessions.py -- Session Orchestrator: the credential lifecycle flows.

register / login / refresh / logout / forgot-password / reset-password /
change-password / account deletion, plus the account views (who-am-I,
data export) and the admin activation toggle.

Every flow either returns a result or raises AuthError with an ErrorKind.
Storage errors are not caught here; they propagate to the API layer's
generic 500 handler.

Concurrency:
  The stores are synchronous SQLAlchemy Core. Each storage call (and each
  PBKDF2 derivation, which is deliberately slow) is dispatched with
  run_in_threadpool so the event loop never blocks on it.

  Registration writes the account, its profile stub and its first refresh
  token in one transaction: either all three rows exist or none do.

  Refresh rotation is decided by RefreshTokenLedger.rotate(): of two
  concurrent refreshes with the same token, exactly one sees its DELETE
  remove the row. The other is rejected with the same error as an unknown
  token.

Anti-enumeration:
  login returns one message for "no such account" and "wrong password", and
  verifies against DUMMY_HASH when the account is missing so both paths cost
  one PBKDF2 derivation. forgot_password returns one message whether or not
  the email exists.

Layer rule: auth/ imports only core/. The profile store and the
notification dispatcher are injected, never imported.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth.errors import AuthError, ErrorKind, TokenError
from auth.ledger import RefreshTokenLedger, parse_expiry
from auth.models import (
    Account,
    AccountIdentity,
    PurposeTag,
    RefreshTokenRecord,
    Role,
    SessionResult,
    TokenPair,
    TokenType,
)
from auth.passwords import DUMMY_HASH, hash_password, password_problems, verify_password
from auth.store import AccountStore, normalize_email
from auth.tokens import TokenCodec, ttl_to_seconds
from core.db import Database

logger = logging.getLogger("jobportal.auth.sessions")

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH = "Invalid refresh token"
INVALID_RESET = "Invalid or expired reset token"
FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, you will receive a password reset link"

SELF_SERVICE_ROLES = (Role.EMPLOYER, Role.SEEKER)


class ProfileStubs(Protocol):
    def create_stub(self, account: Account, conn: Connection | None = None) -> Optional[str]: ...

    def get_for_account(self, account_id: str, role: Role) -> Optional[dict[str, Any]]: ...


class ResetLinkSender(Protocol):
    def send_password_reset_link(self, email: str, reset_url: str) -> bool: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionOrchestrator:
    """Runs the credential flows against injected stores and collaborators.

    Usage:
        sessions = SessionOrchestrator(db, accounts, ledger, codec, profiles, dispatcher)
        result = await sessions.login("a@x.com", "Passw0rd1")
        pair = await sessions.refresh(result.tokens.refresh_token)
    """

    def __init__(
        self,
        db: Database,
        accounts: AccountStore,
        ledger: RefreshTokenLedger,
        codec: TokenCodec,
        profiles: ProfileStubs,
        notifier: ResetLinkSender,
        *,
        access_ttl: str = "15m",
        refresh_ttl: str = "7d",
        reset_ttl_seconds: int = 3600,
        frontend_url: str = "http://localhost:3000",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._accounts = accounts
        self._ledger = ledger
        self._codec = codec
        self._profiles = profiles
        self._notifier = notifier
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl
        # Parse now so a bad TTL setting fails at startup, not on first login.
        self._access_seconds = ttl_to_seconds(access_ttl)
        self._refresh_seconds = ttl_to_seconds(refresh_ttl)
        self._reset_ttl = timedelta(seconds=reset_ttl_seconds)
        self._frontend_url = frontend_url.rstrip("/")
        self._clock = clock

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    async def register(self, email: str, password: str, role: Role, gdpr_consent: bool) -> SessionResult:
        """Create an account with an empty profile stub and an active session."""
        role = Role(role)
        if role not in SELF_SERVICE_ROLES:
            raise AuthError(ErrorKind.VALIDATION, "Role must be employer or seeker")
        if not gdpr_consent:
            raise AuthError(ErrorKind.VALIDATION, "You must accept the privacy policy")
        problems = password_problems(password)
        if problems:
            raise AuthError(ErrorKind.VALIDATION, problems[0])

        email = normalize_email(email)
        if await run_in_threadpool(self._accounts.find_by_email, email) is not None:
            raise AuthError(ErrorKind.CONFLICT, "Email already registered")

        account = Account(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=await run_in_threadpool(hash_password, password),
            role=role,
            gdpr_consent=True,
        )
        tokens, refresh_expiry = self._issue_pair(account)
        try:
            await run_in_threadpool(self._create_account, account, tokens.refresh_token, refresh_expiry)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same email.
            raise AuthError(ErrorKind.CONFLICT, "Email already registered") from exc

        logger.info("Registered %s account %s", role.value, account.id)
        return SessionResult(account=account, tokens=tokens)

    def _create_account(self, account: Account, refresh_token: str, refresh_expiry: datetime) -> None:
        with self._db.transaction() as tx:
            self._accounts.insert(account, conn=tx)
            self._profiles.create_stub(account, conn=tx)
            self._ledger.store(account.id, refresh_token, refresh_expiry, conn=tx)

    async def login(self, email: str, password: str) -> SessionResult:
        email = normalize_email(email)
        account = await run_in_threadpool(self._accounts.find_by_email, email)
        stored_hash = account.password_hash if account is not None else DUMMY_HASH
        password_ok = await run_in_threadpool(verify_password, password, stored_hash)
        if account is None or not password_ok:
            logger.info("Failed login for %s", email)
            raise AuthError(ErrorKind.UNAUTHORIZED, INVALID_CREDENTIALS)
        if not account.is_active:
            logger.info("Login refused for deactivated account %s", account.id)
            raise AuthError(ErrorKind.FORBIDDEN, "Account is deactivated")

        tokens, refresh_expiry = self._issue_pair(account)
        await run_in_threadpool(self._ledger.store, account.id, tokens.refresh_token, refresh_expiry)
        return SessionResult(account=account, tokens=tokens)

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    async def refresh(self, raw_refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair. The presented token is spent."""
        try:
            identity = self._codec.verify(raw_refresh_token, TokenType.REFRESH)
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc.reason.value)
            raise AuthError(ErrorKind.UNAUTHORIZED, INVALID_REFRESH) from exc

        record = await run_in_threadpool(self._ledger.find_by_raw_token, raw_refresh_token, PurposeTag.LOGIN_REFRESH)
        if record is None or record.account_id != identity.id:
            logger.warning("Refresh token for account %s not in ledger (unknown or replayed)", identity.id)
            raise AuthError(ErrorKind.UNAUTHORIZED, INVALID_REFRESH)
        if self._is_expired(record):
            await run_in_threadpool(self._ledger.revoke_one, record.id)
            raise AuthError(ErrorKind.UNAUTHORIZED, "Refresh token expired")

        account = await run_in_threadpool(self._accounts.find_by_id, identity.id)
        if account is None or not account.is_active:
            raise AuthError(ErrorKind.UNAUTHORIZED, "User not found or inactive")

        tokens, refresh_expiry = self._issue_pair(account)
        rotated = await run_in_threadpool(
            self._ledger.rotate, record.id, account.id, tokens.refresh_token, refresh_expiry
        )
        if rotated is None:
            logger.warning("Concurrent refresh lost rotation for account %s", account.id)
            raise AuthError(ErrorKind.UNAUTHORIZED, INVALID_REFRESH)
        return tokens

    async def logout(self, identity: AccountIdentity, raw_refresh_token: Optional[str] = None) -> None:
        """Revoke one refresh token, or every session for the account when none is given."""
        if not raw_refresh_token:
            removed = await run_in_threadpool(
                self._ledger.revoke_all_for_account, identity.id, PurposeTag.LOGIN_REFRESH
            )
            logger.info("Logged out account %s everywhere (%d sessions)", identity.id, removed)
            return
        record = await run_in_threadpool(self._ledger.find_by_raw_token, raw_refresh_token, PurposeTag.LOGIN_REFRESH)
        # Another account's token is left alone; the response is the same either way.
        if record is not None and record.account_id == identity.id:
            await run_in_threadpool(self._ledger.revoke_one, record.id)

    # ------------------------------------------------------------------
    # Password flows
    # ------------------------------------------------------------------

    async def forgot_password(self, email: str) -> str:
        """Issue a reset link if the account exists. Always returns the same message."""
        account = await run_in_threadpool(self._accounts.find_by_email, normalize_email(email))
        if account is None:
            return FORGOT_PASSWORD_MESSAGE

        reset_token = secrets.token_urlsafe(32)
        await run_in_threadpool(
            self._ledger.store,
            account.id,
            reset_token,
            self._clock() + self._reset_ttl,
            PurposeTag.PASSWORD_RESET,
        )
        reset_url = f"{self._frontend_url}/reset-password?token={reset_token}"
        try:
            sent = await run_in_threadpool(self._notifier.send_password_reset_link, account.email, reset_url)
        except Exception:
            # Delivery is fire-and-forget; the caller gets the same answer regardless.
            logger.exception("Reset link dispatch raised for account %s", account.id)
        else:
            if not sent:
                logger.warning("Reset link for account %s was not delivered", account.id)
        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, reset_token: str, new_password: str) -> None:
        """Redeem a reset credential once, set the new password, end every session."""
        problems = password_problems(new_password)
        if problems:
            raise AuthError(ErrorKind.VALIDATION, problems[0])

        record = await run_in_threadpool(self._ledger.find_by_raw_token, reset_token, PurposeTag.PASSWORD_RESET)
        if record is None:
            raise AuthError(ErrorKind.VALIDATION, INVALID_RESET)
        if self._is_expired(record):
            await run_in_threadpool(self._ledger.revoke_one, record.id)
            raise AuthError(ErrorKind.VALIDATION, INVALID_RESET)
        # Consuming the record is the single-use gate: a concurrent redemption
        # of the same token finds nothing to delete.
        if not await run_in_threadpool(self._ledger.revoke_one, record.id):
            raise AuthError(ErrorKind.VALIDATION, INVALID_RESET)

        password_hash = await run_in_threadpool(hash_password, new_password)
        await run_in_threadpool(self._replace_password, record.account_id, password_hash)
        logger.info("Password reset for account %s; all sessions revoked", record.account_id)

    async def change_password(self, identity: AccountIdentity, current_password: str, new_password: str) -> None:
        """Verify the current password, set the new one, end every session.

        No token pair is returned; the caller is expected to log in again.
        """
        problems = password_problems(new_password)
        if problems:
            raise AuthError(ErrorKind.VALIDATION, problems[0])

        account = await run_in_threadpool(self._accounts.find_by_id, identity.id)
        if account is None:
            raise AuthError(ErrorKind.NOT_FOUND, "User not found")
        if not await run_in_threadpool(verify_password, current_password, account.password_hash):
            raise AuthError(ErrorKind.UNAUTHORIZED, "Current password is incorrect")

        password_hash = await run_in_threadpool(hash_password, new_password)
        await run_in_threadpool(self._replace_password, account.id, password_hash)
        logger.info("Password changed for account %s; all sessions revoked", account.id)

    def _replace_password(self, account_id: str, password_hash: str) -> None:
        with self._db.transaction() as tx:
            self._accounts.update_password_hash(account_id, password_hash, conn=tx)
            self._ledger.revoke_all_for_account(account_id, conn=tx)

    # ------------------------------------------------------------------
    # Account views and erasure
    # ------------------------------------------------------------------

    async def who_am_i(self, identity: AccountIdentity) -> Account:
        account = await run_in_threadpool(self._accounts.find_by_id, identity.id)
        if account is None:
            raise AuthError(ErrorKind.NOT_FOUND, "User not found")
        return account

    async def export_data(self, identity: AccountIdentity) -> dict[str, Any]:
        """Everything stored about the caller, for data portability requests."""
        account = await self.who_am_i(identity)
        profile = await run_in_threadpool(self._profiles.get_for_account, account.id, account.role)
        return {
            "user": {
                "id": account.id,
                "email": account.email,
                "role": account.role.value,
                "email_verified": account.email_verified,
                "gdpr_consent": account.gdpr_consent,
                "created_at": account.created_at,
                "updated_at": account.updated_at,
            },
            "profile": profile,
            "exported_at": self._clock().isoformat(),
        }

    async def delete_account(self, identity: AccountIdentity) -> None:
        """Hard-delete the caller's account. Profile and ledger rows cascade."""
        if not await run_in_threadpool(self._accounts.delete, identity.id):
            raise AuthError(ErrorKind.NOT_FOUND, "User not found")
        logger.info("Deleted account %s", identity.id)

    async def set_active(self, actor: AccountIdentity, account_id: str, active: bool) -> Account:
        """Admin toggle. Deactivation also ends the target's sessions."""
        if not active and account_id == actor.id:
            raise AuthError(ErrorKind.VALIDATION, "You cannot deactivate your own account")
        account = await run_in_threadpool(self._accounts.find_by_id, account_id)
        if account is None:
            raise AuthError(ErrorKind.NOT_FOUND, "User not found")

        await run_in_threadpool(self._apply_active, account_id, active)
        account.is_active = active
        logger.info("Account %s %s by %s", account_id, "activated" if active else "deactivated", actor.id)
        return account

    def _apply_active(self, account_id: str, active: bool) -> None:
        with self._db.transaction() as tx:
            self._accounts.set_active(account_id, active, conn=tx)
            if not active:
                self._ledger.revoke_all_for_account(account_id, conn=tx)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_pair(self, account: Account) -> tuple[TokenPair, datetime]:
        identity = AccountIdentity(id=account.id, email=account.email, role=account.role)
        pair = TokenPair(
            access_token=self._codec.issue(identity, TokenType.ACCESS, self._access_ttl),
            refresh_token=self._codec.issue(identity, TokenType.REFRESH, self._refresh_ttl),
            expires_in=self._access_seconds,
        )
        return pair, self._clock() + timedelta(seconds=self._refresh_seconds)

    def _is_expired(self, record: RefreshTokenRecord) -> bool:
        return parse_expiry(record.expires_at) <= self._clock()
