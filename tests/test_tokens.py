"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - issue/verify round trip carries id, email, role
  - type enforcement in both directions (WRONG_TYPE)
  - expiry against an injected clock, no sleeping (EXPIRED)
  - tampered signature, wrong key (SIGNATURE_INVALID) and garbage (MALFORMED)
  - ttl_to_seconds accepted and rejected shapes
"""

from __future__ import annotations

import pytest
from jose import jwt

from auth.errors import ErrorKind, TokenError, TokenFailure
from auth.models import AccountIdentity, Role, TokenType
from auth.tokens import ALGORITHM, TokenCodec, ttl_to_seconds

SECRET = "s" * 48
IDENTITY = AccountIdentity(id="acct-1", email="a@x.com", role=Role.SEEKER)


@pytest.fixture
def codec(fake_clock) -> TokenCodec:
    return TokenCodec(SECRET, clock=fake_clock)


class TestRoundTrip:
    def test_access_token_verifies(self, codec: TokenCodec) -> None:
        token = codec.issue(IDENTITY, TokenType.ACCESS, "15m")
        assert codec.verify(token, TokenType.ACCESS) == IDENTITY

    def test_claims(self, codec: TokenCodec, fake_clock) -> None:
        token = codec.issue(IDENTITY, TokenType.REFRESH, "7d")
        claims = jwt.get_unverified_claims(token)
        issued = int(fake_clock().timestamp())
        assert claims["sub"] == "acct-1"
        assert claims["role"] == "seeker"
        assert claims["type"] == "refresh"
        assert claims["iat"] == issued
        assert claims["exp"] == issued + 7 * 24 * 3600

    def test_tokens_issued_in_same_second_differ(self, codec: TokenCodec) -> None:
        first = codec.issue(IDENTITY, TokenType.REFRESH, "7d")
        second = codec.issue(IDENTITY, TokenType.REFRESH, "7d")
        assert first != second


class TestTypeEnforcement:
    def test_refresh_token_rejected_as_access(self, codec: TokenCodec) -> None:
        token = codec.issue(IDENTITY, TokenType.REFRESH, "7d")
        with pytest.raises(TokenError) as exc_info:
            codec.verify(token, TokenType.ACCESS)
        assert exc_info.value.reason is TokenFailure.WRONG_TYPE
        assert exc_info.value.kind is ErrorKind.UNAUTHORIZED

    def test_access_token_rejected_as_refresh(self, codec: TokenCodec) -> None:
        token = codec.issue(IDENTITY, TokenType.ACCESS, "15m")
        with pytest.raises(TokenError) as exc_info:
            codec.verify(token, TokenType.REFRESH)
        assert exc_info.value.reason is TokenFailure.WRONG_TYPE


class TestExpiry:
    def test_valid_until_expiry(self, codec: TokenCodec, fake_clock) -> None:
        token = codec.issue(IDENTITY, TokenType.ACCESS, "10s")
        fake_clock.advance(9)
        assert codec.verify(token, TokenType.ACCESS) == IDENTITY

    def test_one_second_token_expires(self, codec: TokenCodec, fake_clock) -> None:
        token = codec.issue(IDENTITY, TokenType.ACCESS, "1s")
        fake_clock.advance(1)
        with pytest.raises(TokenError) as exc_info:
            codec.verify(token, TokenType.ACCESS)
        assert exc_info.value.reason is TokenFailure.EXPIRED


class TestBadTokens:
    def test_wrong_secret(self, codec: TokenCodec, fake_clock) -> None:
        other = TokenCodec("o" * 48, clock=fake_clock)
        token = other.issue(IDENTITY, TokenType.ACCESS, "15m")
        with pytest.raises(TokenError) as exc_info:
            codec.verify(token, TokenType.ACCESS)
        assert exc_info.value.reason is TokenFailure.SIGNATURE_INVALID

    def test_tampered_payload(self, codec: TokenCodec) -> None:
        header, payload, signature = codec.issue(IDENTITY, TokenType.ACCESS, "15m").split(".")
        forged = jwt.encode({"sub": "acct-2"}, "x" * 48, algorithm=ALGORITHM).split(".")[1]
        with pytest.raises(TokenError) as exc_info:
            codec.verify(f"{header}.{forged}.{signature}", TokenType.ACCESS)
        assert exc_info.value.reason is TokenFailure.SIGNATURE_INVALID

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c", "...."])
    def test_malformed(self, codec: TokenCodec, token: str) -> None:
        with pytest.raises(TokenError) as exc_info:
            codec.verify(token, TokenType.ACCESS)
        assert exc_info.value.reason is TokenFailure.MALFORMED

    def test_missing_claims_is_malformed(self, codec: TokenCodec) -> None:
        token = jwt.encode({"sub": "acct-1", "exp": 4_000_000_000}, SECRET, algorithm=ALGORITHM)
        with pytest.raises(TokenError) as exc_info:
            codec.verify(token, TokenType.ACCESS)
        assert exc_info.value.reason is TokenFailure.MALFORMED

    def test_unknown_role_is_malformed(self, codec: TokenCodec) -> None:
        claims = {"sub": "acct-1", "email": "a@x.com", "role": "root", "type": "access", "exp": 4_000_000_000}
        token = jwt.encode(claims, SECRET, algorithm=ALGORITHM)
        with pytest.raises(TokenError) as exc_info:
            codec.verify(token, TokenType.ACCESS)
        assert exc_info.value.reason is TokenFailure.MALFORMED


class TestTtlToSeconds:
    @pytest.mark.parametrize(
        "duration, seconds",
        [("1s", 1), ("15m", 900), ("2h", 7200), ("7d", 604800), ("0s", 0)],
    )
    def test_valid(self, duration: str, seconds: int) -> None:
        assert ttl_to_seconds(duration) == seconds

    @pytest.mark.parametrize("duration", ["", "15", "m", "15x", "1.5h", "-1s", " 15m", "15m ", "15M", "1w"])
    def test_invalid(self, duration: str) -> None:
        with pytest.raises(ValueError):
            ttl_to_seconds(duration)
