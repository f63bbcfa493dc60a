"""
core/db.py -- Shared SQLAlchemy engine plumbing.

Every store in the project (accounts, refresh-token ledger, profile stubs)
declares its tables on the one MetaData object defined here and runs against
one Database. Sharing the engine is what lets registration insert the
account, its profile stub and its first refresh token in a single
transaction, and what lets ON DELETE CASCADE reach from users into the
dependent tables.

SQLite specifics:
  WAL journal mode and foreign_keys=ON are PRAGMAs, and SQLite PRAGMAs are
  per-connection -- they are not inherited by new connections from the pool.
  The connect listener sets both on every new DBAPI connection. Without
  foreign_keys=ON, SQLite parses REFERENCES clauses but never enforces them.

Layer rule: core/ is the kernel. No imports from api/, auth/, profiles/, or notify/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger("jobportal.db")

metadata = MetaData()


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on each new SQLite connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Owns the engine and hands out connections and transactions.

    Usage:
        db = Database("sqlite:///jobportal.db")
        with db.transaction() as conn:
            conn.execute(...)
        db.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)

    def create_all(self) -> None:
        """Create every table registered on the shared MetaData (idempotent)."""
        metadata.create_all(self.engine)

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Read-only style connection; callers that write must commit."""
        with self.engine.connect() as conn:
            yield conn

    @contextmanager
    def transaction(self, outer: Connection | None = None) -> Iterator[Connection]:
        """Connection wrapped in BEGIN ... COMMIT, rolled back on any exception.

        When outer is given the caller already owns a transaction: yield it
        unchanged so the write joins that unit of work instead of committing
        on its own.
        """
        if outer is not None:
            yield outer
            return
        with self.engine.begin() as conn:
            yield conn

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
