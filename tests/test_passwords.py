"""
tests/test_passwords.py -- Unit tests for auth/passwords.py.

Covers:
  - hash/verify round trip, wrong password rejected
  - fresh salt per call; deterministic output with an explicit salt
  - malformed stored blobs return False instead of raising
  - the registration strength policy
"""

from __future__ import annotations

import base64

import pytest

from auth.passwords import (
    DUMMY_HASH,
    KEY_LENGTH,
    SALT_LENGTH,
    hash_password,
    password_problems,
    verify_password,
)


class TestHashAndVerify:
    def test_correct_password_verifies(self) -> None:
        stored = hash_password("Passw0rd1")
        assert verify_password("Passw0rd1", stored) is True

    def test_wrong_password_rejected(self) -> None:
        stored = hash_password("Passw0rd1")
        assert verify_password("Passw0rd2", stored) is False
        assert verify_password("", stored) is False

    def test_same_password_hashes_differently(self) -> None:
        """Each call draws a new salt; both blobs still verify."""
        first = hash_password("Passw0rd1")
        second = hash_password("Passw0rd1")
        assert first != second
        assert verify_password("Passw0rd1", first)
        assert verify_password("Passw0rd1", second)

    def test_explicit_salt_is_deterministic(self) -> None:
        salt = bytes(range(SALT_LENGTH))
        assert hash_password("Passw0rd1", salt=salt) == hash_password("Passw0rd1", salt=salt)

    def test_blob_layout_is_salt_then_key(self) -> None:
        salt = b"\x01" * SALT_LENGTH
        raw = base64.b64decode(hash_password("Passw0rd1", salt=salt))
        assert len(raw) == SALT_LENGTH + KEY_LENGTH
        assert raw[:SALT_LENGTH] == salt

    def test_wrong_salt_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            hash_password("Passw0rd1", salt=b"short")

    def test_unicode_password(self) -> None:
        stored = hash_password("Pässwörd1")
        assert verify_password("Pässwörd1", stored)
        assert not verify_password("Passwörd1", stored)

    def test_dummy_hash_is_well_formed(self) -> None:
        """Login verifies against it for unknown emails; it must not raise."""
        assert verify_password("anything", DUMMY_HASH) is False


class TestMalformedStoredHash:
    @pytest.mark.parametrize(
        "stored",
        [
            "",
            "not base64 at all!",
            base64.b64encode(b"too short").decode(),
            base64.b64encode(b"x" * (SALT_LENGTH + KEY_LENGTH + 1)).decode(),
            "ünïcode",
        ],
    )
    def test_returns_false(self, stored: str) -> None:
        assert verify_password("Passw0rd1", stored) is False


class TestPasswordPolicy:
    def test_strong_password_has_no_problems(self) -> None:
        assert password_problems("Passw0rd1") == []

    def test_reports_every_broken_rule(self) -> None:
        problems = password_problems("abc")
        assert "Password must be at least 8 characters" in problems
        assert "Password must contain at least one uppercase letter" in problems
        assert "Password must contain at least one number" in problems
        assert "Password must contain at least one lowercase letter" not in problems

    @pytest.mark.parametrize(
        "password, expected",
        [
            ("password1", "Password must contain at least one uppercase letter"),
            ("PASSWORD1", "Password must contain at least one lowercase letter"),
            ("Password", "Password must contain at least one number"),
            ("Pass1", "Password must be at least 8 characters"),
        ],
    )
    def test_single_rule(self, password: str, expected: str) -> None:
        assert password_problems(password) == [expected]
