"""
auth/store.py -- SQLAlchemy Core persistence for Account records.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Routes and the session orchestrator never
touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are lower-cased here as well as at the API boundary, so a caller
  that forgets to normalize still cannot create a second account that
  differs only by case.

Transactions:
  Write methods accept an optional Connection. Passing one makes the write
  part of the caller's transaction (registration inserts the account, its
  profile stub and its first refresh token atomically); omitting it commits
  immediately.

Layer rule: no imports from api/, profiles/, or notify/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, String, Table, Text, func, select
from sqlalchemy.engine import Connection

from auth.models import Account, Role
from core.db import Database, metadata, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("gdpr_consent", Integer, nullable=False, server_default="0"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore(db)
        store.insert(Account(id=..., email="a@x.com", password_hash=..., role=Role.SEEKER))
        account = store.find_by_email("a@x.com")
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        metadata.create_all(db.engine, tables=[users])

    def find_by_email(self, email: str) -> Account | None:
        """Look up by normalized email. Returns None if not found."""
        with self._db.connect() as conn:
            row = conn.execute(select(users).where(users.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        with self._db.connect() as conn:
            row = conn.execute(select(users).where(users.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def insert(self, account: Account, conn: Connection | None = None) -> Account:
        """Insert a new account and return it with timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The orchestrator checks first, but two concurrent registrations can
        both pass that check; the UNIQUE constraint decides the winner.
        """
        stamp = now_iso()
        account.email = normalize_email(account.email)
        account.created_at = stamp
        account.updated_at = stamp
        with self._db.transaction(conn) as tx:
            tx.execute(
                users.insert().values(
                    id=account.id,
                    email=account.email,
                    password_hash=account.password_hash,
                    role=account.role.value,
                    is_active=1 if account.is_active else 0,
                    email_verified=1 if account.email_verified else 0,
                    gdpr_consent=1 if account.gdpr_consent else 0,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
        return account

    def update_password_hash(self, account_id: str, password_hash: str, conn: Connection | None = None) -> bool:
        """Replace the stored hash. Returns False if the account does not exist."""
        with self._db.transaction(conn) as tx:
            result = tx.execute(
                users.update().where(users.c.id == account_id).values(password_hash=password_hash, updated_at=now_iso())
            )
        return result.rowcount > 0

    def set_active(self, account_id: str, active: bool, conn: Connection | None = None) -> bool:
        with self._db.transaction(conn) as tx:
            result = tx.execute(
                users.update()
                .where(users.c.id == account_id)
                .values(is_active=1 if active else 0, updated_at=now_iso())
            )
        return result.rowcount > 0

    def delete(self, account_id: str) -> bool:
        """Hard-delete an account. Profile stubs and ledger rows go with it (ON DELETE CASCADE)."""
        with self._db.transaction() as tx:
            result = tx.execute(users.delete().where(users.c.id == account_id))
        return result.rowcount > 0

    def count(self) -> int:
        with self._db.connect() as conn:
            return conn.execute(select(func.count()).select_from(users)).scalar() or 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        is_active=bool(row.is_active),
        email_verified=bool(row.email_verified),
        gdpr_consent=bool(row.gdpr_consent),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
