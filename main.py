#!/usr/bin/env python3
"""
Job portal -- operator commands.

Usage:
  python main.py create-admin --email admin@example.com
  echo 'Str0ngPassw0rd' | python main.py create-admin --email admin@example.com --password-stdin
  python main.py purge-expired

Admin accounts cannot be created through /auth/register; this is the only
way to make one. purge-expired removes refresh and reset tokens that expired
without ever being presented again.

Environment variables:
  DATABASE_URL  SQLAlchemy URL (default: sqlite:///jobportal.db beside this file)
  SECRET_KEY    Required unless DEBUG=true; must match the API server's key.
"""

import argparse
import getpass
import sys
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.ledger import RefreshTokenLedger
from auth.models import Account, Role
from auth.passwords import hash_password, password_problems
from auth.store import AccountStore, normalize_email
from core.config import get_settings
from core.db import Database


def create_admin(db: Database, email: str, password: str) -> Account:
    """Insert an active admin account. Raises ValueError on a weak password or taken email."""
    problems = password_problems(password)
    if problems:
        raise ValueError("; ".join(problems))
    accounts = AccountStore(db)
    account = Account(
        id=str(uuid.uuid4()),
        email=normalize_email(email),
        password_hash=hash_password(password),
        role=Role.ADMIN,
        email_verified=True,
        gdpr_consent=True,
    )
    try:
        return accounts.insert(account)
    except IntegrityError as exc:
        raise ValueError(f"An account with email {account.email} already exists") from exc


def purge_expired(db: Database, secret_key: str) -> int:
    return RefreshTokenLedger(db, secret_key).purge_expired()


def _read_password(from_stdin: bool) -> str:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        raise ValueError("Passwords do not match")
    return password


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="jobportal",
        description="Operator commands for the job portal API.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    admin = commands.add_parser("create-admin", help="Create an administrator account")
    admin.add_argument("--email", required=True, help="Login email for the new admin")
    admin.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting",
    )

    commands.add_parser("purge-expired", help="Delete expired refresh and reset tokens")

    args = parser.parse_args(argv)
    settings = get_settings()
    db = Database(settings.database_url)
    try:
        if args.command == "create-admin":
            try:
                account = create_admin(db, args.email, _read_password(args.password_stdin))
            except ValueError as e:
                print(f"  [!] {e}", file=sys.stderr)
                return 1
            print(f"  Created admin {account.email} ({account.id})")
        elif args.command == "purge-expired":
            removed = purge_expired(db, settings.secret_key)
            print(f"  Purged {removed} expired token(s)")
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
