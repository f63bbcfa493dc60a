"""
auth/ledger.py -- Refresh Token Ledger: the server-side record of outstanding
single-use credentials.

Pattern: Repository + Data Mapper, same shape as auth/store.py.

Security design decisions:
  Hash-only storage: rows hold HMAC-SHA256(SECRET_KEY, raw_token), never the
       raw value. Lookup is by hash, so it stays an indexed equality match.

  Purpose column: login refresh tokens and password-reset credentials share
       this table. Each row is tagged with a PurposeTag and every lookup
       filters on it, so a reset credential can never be redeemed at
       /auth/refresh and a refresh token can never reset a password.

  Single use: rotate() runs DELETE old + INSERT new in one transaction and
       only inserts when the DELETE removed exactly the old row. Two requests
       racing with the same refresh token serialize on the SQLite write lock;
       the loser's DELETE matches nothing, it inserts nothing, and the caller
       rejects it exactly as it rejects a token that never existed.

  Timestamps: expires_at is written as a fixed-width UTC ISO-8601 string so
       purge_expired() can compare in SQL with plain string ordering.

Layer rule: no imports from api/, profiles/, or notify/.
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Index, String, Table, select
from sqlalchemy.engine import Connection

from auth.models import PurposeTag, RefreshTokenRecord
from auth.store import users
from core.db import Database, metadata, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),
    Column("purpose", String(20), nullable=False, server_default=PurposeTag.LOGIN_REFRESH.value),
    Column("expires_at", String(40), nullable=False),
    Column("created_at", String(40), nullable=False),
    Index("idx_refresh_tokens_account", "account_id"),
)


def format_expiry(moment: datetime) -> str:
    """Fixed-width UTC ISO-8601, so string order equals time order."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_expiry(value: str) -> datetime:
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RefreshTokenLedger:
    """Persistent map of hashed credential -> (account, purpose, expiry).

    Usage:
        ledger = RefreshTokenLedger(db, secret_key=settings.secret_key)
        ledger.store(account.id, raw_refresh_token, expires_at)
        record = ledger.find_by_raw_token(raw_refresh_token)
    """

    def __init__(self, db: Database, secret_key: str) -> None:
        self._db = db
        self._key = secret_key.encode()
        metadata.create_all(db.engine, tables=[users, refresh_tokens])

    def hash_token(self, raw_token: str) -> str:
        return hmac.new(self._key, raw_token.encode(), hashlib.sha256).hexdigest()

    def store(
        self,
        account_id: str,
        raw_token: str,
        expires_at: datetime,
        purpose: PurposeTag = PurposeTag.LOGIN_REFRESH,
        conn: Connection | None = None,
    ) -> RefreshTokenRecord:
        """Persist the hash of raw_token. The raw value is neither logged nor returned."""
        with self._db.transaction(conn) as tx:
            return self._insert(tx, account_id, raw_token, expires_at, purpose)

    def find_by_raw_token(
        self, raw_token: str, purpose: PurposeTag = PurposeTag.LOGIN_REFRESH
    ) -> RefreshTokenRecord | None:
        token_hash = self.hash_token(raw_token)
        with self._db.connect() as conn:
            row = conn.execute(
                select(refresh_tokens).where(
                    (refresh_tokens.c.token_hash == token_hash) & (refresh_tokens.c.purpose == purpose.value)
                )
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def rotate(
        self,
        old_record_id: str,
        account_id: str,
        new_raw_token: str,
        new_expiry: datetime,
    ) -> RefreshTokenRecord | None:
        """Replace one login refresh record with a new one, atomically.

        Returns the new record, or None when the old record was already gone
        (replayed or concurrently rotated). In the None case nothing is
        written. Callers must have checked the old record's ownership and
        expiry before calling.
        """
        with self._db.transaction() as tx:
            deleted = tx.execute(
                refresh_tokens.delete().where(
                    (refresh_tokens.c.id == old_record_id)
                    & (refresh_tokens.c.account_id == account_id)
                    & (refresh_tokens.c.purpose == PurposeTag.LOGIN_REFRESH.value)
                )
            ).rowcount
            if deleted != 1:
                return None
            return self._insert(tx, account_id, new_raw_token, new_expiry, PurposeTag.LOGIN_REFRESH)

    def revoke_one(self, record_id: str) -> bool:
        """Delete one record. Returns False if it was already gone."""
        with self._db.transaction() as tx:
            result = tx.execute(refresh_tokens.delete().where(refresh_tokens.c.id == record_id))
        return result.rowcount > 0

    def revoke_all_for_account(
        self,
        account_id: str,
        purpose: PurposeTag | None = None,
        conn: Connection | None = None,
    ) -> int:
        """Delete every record for the account (optionally only one purpose). Returns rows removed."""
        stmt = refresh_tokens.delete().where(refresh_tokens.c.account_id == account_id)
        if purpose is not None:
            stmt = stmt.where(refresh_tokens.c.purpose == purpose.value)
        with self._db.transaction(conn) as tx:
            result = tx.execute(stmt)
        return result.rowcount

    def count_for_account(self, account_id: str, purpose: PurposeTag | None = None) -> int:
        stmt = select(refresh_tokens.c.id).where(refresh_tokens.c.account_id == account_id)
        if purpose is not None:
            stmt = stmt.where(refresh_tokens.c.purpose == purpose.value)
        with self._db.connect() as conn:
            return len(conn.execute(stmt).fetchall())

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete all rows whose expiry has passed. Returns number of rows removed.

        Expired rows are also evicted lazily when presented; this sweep is
        for rows nobody ever presents again.
        """
        cutoff = format_expiry(now or datetime.now(timezone.utc))
        with self._db.transaction() as tx:
            result = tx.execute(refresh_tokens.delete().where(refresh_tokens.c.expires_at < cutoff))
        return result.rowcount

    def _insert(
        self,
        tx: Connection,
        account_id: str,
        raw_token: str,
        expires_at: datetime,
        purpose: PurposeTag,
    ) -> RefreshTokenRecord:
        record = RefreshTokenRecord(
            id=str(uuid.uuid4()),
            account_id=account_id,
            token_hash=self.hash_token(raw_token),
            expires_at=format_expiry(expires_at),
            purpose=purpose,
            created_at=now_iso(),
        )
        tx.execute(
            refresh_tokens.insert().values(
                id=record.id,
                account_id=record.account_id,
                token_hash=record.token_hash,
                purpose=record.purpose.value,
                expires_at=record.expires_at,
                created_at=record.created_at,
            )
        )
        return record


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_record(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        account_id=row.account_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        purpose=PurposeTag(row.purpose),
        created_at=row.created_at,
    )
