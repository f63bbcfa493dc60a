"""
auth/passwords.py -- Password hashing, verification, and strength policy.

Security design decisions:
  KDF: PBKDF2-HMAC-SHA256 from hashlib with a fixed 100,000 iterations and a
       32-byte derived key. The stored value is base64(salt || key) with a
       16-byte random salt, which keeps hashes written by the earlier
       Workers-based deployment verifiable without a migration.

  Comparison: hmac.compare_digest, which does not stop at the first differing
       byte. A short-circuiting == on derived keys leaks how many leading bytes
       matched through response time.

  Malformed blobs: verify_password() returns False for anything that does not
       decode to exactly salt + key. A corrupt row must not 500 the login
       endpoint, and it must not authenticate either.

  Timing equalization: DUMMY_HASH is computed once at module load. The session
       orchestrator verifies against it when an email has no account, so an
       unknown email costs the same 100k iterations as a wrong password and
       response time does not reveal which accounts exist.

Layer rule: stdlib only. No imports from api/, profiles/, or notify/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import secrets

SALT_LENGTH = 16
KEY_LENGTH = 32
ITERATIONS = 100_000
MIN_PASSWORD_LENGTH = 8


def _derive(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS, dklen=KEY_LENGTH)


def hash_password(password: str, salt: bytes | None = None) -> str:
    """Return base64(salt || PBKDF2(password, salt)).

    salt is generated fresh when omitted. Passing one makes the output
    deterministic, which only tests should rely on.
    """
    if salt is None:
        salt = secrets.token_bytes(SALT_LENGTH)
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"salt must be {SALT_LENGTH} bytes")
    return base64.b64encode(salt + _derive(password, salt)).decode("ascii")


def verify_password(password: str, stored: str) -> bool:
    """Return True if password matches the stored blob. Constant-time compare."""
    try:
        combined = base64.b64decode(stored.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError):
        return False
    if len(combined) != SALT_LENGTH + KEY_LENGTH:
        return False
    salt, expected = combined[:SALT_LENGTH], combined[SALT_LENGTH:]
    return hmac.compare_digest(_derive(password, salt), expected)


DUMMY_HASH: str = hash_password("jobportal_timing_dummy")


# ---------------------------------------------------------------------------
# Strength policy
# ---------------------------------------------------------------------------

_POLICY: list[tuple[re.Pattern, str]] = [
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain at least one number"),
]


def password_problems(password: str) -> list[str]:
    """Return every policy rule the password breaks; empty list means acceptable."""
    problems: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    problems.extend(message for pattern, message in _POLICY if not pattern.search(password))
    return problems
