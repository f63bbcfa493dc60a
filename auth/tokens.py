"""
auth/tokens.py -- JWT issue and verify for access and refresh tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (account id), email, role,
       type ("access" | "refresh"), iat, exp, and a random jti. The jti makes
       every issued token unique even when the same account logs in twice
       within one second, which matters because the refresh-token ledger is
       keyed by the token's hash.

  Token type: verify() takes the type the caller expects and rejects any other.
       An access token presented to /auth/refresh, or a refresh token presented
       as a Bearer credential, is refused with TokenFailure.WRONG_TYPE.

  Failure reasons: verify() raises TokenError with one of four reasons
       (malformed, signature_invalid, expired, wrong_type). Routes collapse all
       four into a 401; the reason exists for logging.

  Clock: expiry is checked against the codec's injected clock rather than
       jose's internal utcnow(), so tests can move time instead of sleeping.

Layer rule: no imports from api/, profiles/, or notify/.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.errors import TokenError, TokenFailure
from auth.models import AccountIdentity, Role, TokenType

ALGORITHM = "HS256"

_TTL_RE = re.compile(r"^(\d+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 60 * 60, "d": 60 * 60 * 24}


def ttl_to_seconds(duration: str) -> int:
    """Parse "<integer><s|m|h|d>" (e.g. "15m", "7d") into seconds.

    Raises ValueError for any other shape, including whitespace, signs,
    decimals, and unknown units.
    """
    match = _TTL_RE.match(duration)
    if match is None:
        raise ValueError(f"Invalid duration {duration!r}: expected <integer><s|m|h|d>")
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Signs and verifies typed, time-boxed JWTs with one symmetric secret.

    Usage:
        codec = TokenCodec(settings.secret_key)
        token = codec.issue(identity, TokenType.ACCESS, "15m")
        identity = codec.verify(token, TokenType.ACCESS)
    """

    def __init__(self, secret_key: str, clock: Callable[[], datetime] = _utcnow) -> None:
        self._secret_key = secret_key
        self._clock = clock

    def issue(self, identity: AccountIdentity, token_type: TokenType, ttl: str) -> str:
        now = int(self._clock().timestamp())
        payload = {
            "sub": identity.id,
            "email": identity.email,
            "role": identity.role.value,
            "type": token_type.value,
            "iat": now,
            "exp": now + ttl_to_seconds(ttl),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def verify(self, token: str, expected_type: TokenType) -> AccountIdentity:
        """Return the identity in a valid token of the expected type.

        Raises TokenError(reason) on any failure. Checks run in order:
        structure, signature, claims shape, expiry, type.
        """
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenError(TokenFailure.MALFORMED) from exc

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTClaimsError as exc:
            raise TokenError(TokenFailure.MALFORMED) from exc
        except JWTError as exc:
            raise TokenError(TokenFailure.SIGNATURE_INVALID) from exc

        try:
            identity = AccountIdentity(
                id=str(payload["sub"]),
                email=str(payload["email"]),
                role=Role(payload["role"]),
            )
            expires_at = int(payload["exp"])
            token_type = TokenType(payload["type"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenError(TokenFailure.MALFORMED) from exc

        if self._clock().timestamp() >= expires_at:
            raise TokenError(TokenFailure.EXPIRED)
        if token_type is not expected_type:
            raise TokenError(TokenFailure.WRONG_TYPE)
        return identity
