"""
profiles/store.py -- SQLAlchemy Core persistence for profile stubs.

Pattern: Repository + Data Mapper, same shape as auth/store.py. List and
object fields are stored as JSON text, decoded by the mappers.

Registration calls create_stub() inside the same transaction that inserts
the account, so a failed stub insert rolls the account back with it.

Admins have no profile; create_stub() is a no-op for them.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Optional

from sqlalchemy import Column, ForeignKey, Index, String, Table, Text, select
from sqlalchemy.engine import Connection

from auth.models import Account, Role
from auth.store import users
from core.db import Database, metadata, now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

employer_profiles = Table(
    "employer_profiles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False, unique=True),
    Column("company_name", Text, nullable=False, server_default=""),
    Column("description", Text, nullable=False, server_default=""),
    Column("industry", Text, nullable=False, server_default=""),
    Column("contact_details", Text, nullable=False, server_default="{}"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
    Index("idx_employer_user", "user_id"),
)

seeker_profiles = Table(
    "seeker_profiles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey(users.c.id, ondelete="CASCADE"), nullable=False, unique=True),
    Column("full_name", Text, nullable=False, server_default=""),
    Column("work_history", Text, nullable=False, server_default="[]"),
    Column("education", Text, nullable=False, server_default="[]"),
    Column("skills", Text, nullable=False, server_default="[]"),
    Column("preferences", Text, nullable=False, server_default="{}"),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
    Index("idx_seeker_user", "user_id"),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ProfileStore:
    """Repository for role-specific profile stubs.

    Usage:
        profiles = ProfileStore(db)
        profiles.create_stub(account, conn=tx)
        stub = profiles.get_for_account(account.id, account.role)
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        metadata.create_all(db.engine, tables=[users, employer_profiles, seeker_profiles])

    def create_stub(self, account: Account, conn: Connection | None = None) -> Optional[str]:
        """Insert an empty profile row for the account's role. Returns the profile id.

        Employer stubs carry the account email as their initial contact
        address. Returns None for roles without a profile.
        """
        profile_id = str(uuid.uuid4())
        stamp = now_iso()
        if account.role is Role.EMPLOYER:
            stmt = employer_profiles.insert().values(
                id=profile_id,
                user_id=account.id,
                company_name="",
                description="",
                industry="",
                contact_details=json.dumps({"email": account.email}),
                created_at=stamp,
                updated_at=stamp,
            )
        elif account.role is Role.SEEKER:
            stmt = seeker_profiles.insert().values(
                id=profile_id,
                user_id=account.id,
                full_name="",
                work_history="[]",
                education="[]",
                skills="[]",
                preferences="{}",
                created_at=stamp,
                updated_at=stamp,
            )
        else:
            return None
        with self._db.transaction(conn) as tx:
            tx.execute(stmt)
        return profile_id

    def get_for_account(self, account_id: str, role: Role) -> Optional[dict[str, Any]]:
        """Return the account's profile as a plain dict, or None if it has none."""
        if role is Role.EMPLOYER:
            table, mapper = employer_profiles, _row_to_employer
        elif role is Role.SEEKER:
            table, mapper = seeker_profiles, _row_to_seeker
        else:
            return None
        with self._db.connect() as conn:
            row = conn.execute(select(table).where(table.c.user_id == account_id)).fetchone()
        return mapper(row) if row is not None else None


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_employer(row) -> dict[str, Any]:
    return {
        "id": row.id,
        "company_name": row.company_name,
        "description": row.description,
        "industry": row.industry,
        "contact_details": json.loads(row.contact_details) if row.contact_details else {},
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def _row_to_seeker(row) -> dict[str, Any]:
    return {
        "id": row.id,
        "full_name": row.full_name,
        "work_history": json.loads(row.work_history) if row.work_history else [],
        "education": json.loads(row.education) if row.education else [],
        "skills": json.loads(row.skills) if row.skills else [],
        "preferences": json.loads(row.preferences) if row.preferences else {},
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }
