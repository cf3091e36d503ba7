"""
auth/tokens.py -- JWT access/refresh tokens and password-reset token helpers.

Security design decisions:
  JWT: python-jose with HS256. Two kinds of token, each signed with its own
       secret:
         access  -- sub, email, role, type="access"; short lived.
         refresh -- sub, type="refresh"; long lived, only ever exchanged for
                    a fresh pair at /auth/refresh-token.
       Rotating a secret invalidates every outstanding token of that kind.
       There is no server-side revocation list.

  Expiry: checked against the injectable clock rather than inside jose, so
       the validity window is exact and testable -- a token verifies at
       exactly its exp and fails one second later.

  Reset tokens: secrets.token_hex(20) cleartext goes to the user out of band;
       only SHA-256(token) is stored. A DB leak does not yield usable tokens.
       A plain hash is enough here (no bcrypt) because the token is 160 random
       bits, not a low-entropy secret.

Layer rule: no imports from api/ or core/. Secrets and lifetimes are passed in
by the caller (api/main.py lifespan), which reads them from core.config.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.errors import TokenExpired, TokenInvalid, TokenKindMismatch
from auth.models import TokenPair

if TYPE_CHECKING:
    from auth.models import User

_ALGORITHM = "HS256"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenIssuer:
    """Signs and verifies access and refresh tokens.

    Usage:
        issuer = TokenIssuer(access_secret, refresh_secret, 3600, 7 * 86400)
        pair = issuer.issue_pair(user)
        claims = issuer.verify(pair.access_token, TokenKind.ACCESS)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expire_seconds: int,
        refresh_expire_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._secrets = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}
        self._lifetimes = {TokenKind.ACCESS: access_expire_seconds, TokenKind.REFRESH: refresh_expire_seconds}
        self._clock = clock

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, user: User) -> str:
        return self._encode(
            TokenKind.ACCESS,
            {"sub": str(user.id), "email": user.email, "role": user.role.value},
        )

    def issue_refresh_token(self, user: User) -> str:
        return self._encode(TokenKind.REFRESH, {"sub": str(user.id)})

    def issue_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user),
            refresh_token=self.issue_refresh_token(user),
        )

    def expires_in(self, kind: TokenKind) -> int:
        return self._lifetimes[kind]

    def _encode(self, kind: TokenKind, claims: dict) -> str:
        now = self._clock()
        payload = {
            **claims,
            "type": kind.value,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._lifetimes[kind])).timestamp()),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str, expected_kind: TokenKind) -> dict:
        """Return the claims of a valid token of expected_kind.

        Raises:
            TokenInvalid:      bad signature, malformed token, missing claims.
            TokenKindMismatch: a valid token of the other kind.
            TokenExpired:      now is past the exp claim.
        """
        try:
            claims = self._decode(token, expected_kind)
        except JWTError as exc:
            other = TokenKind.REFRESH if expected_kind is TokenKind.ACCESS else TokenKind.ACCESS
            try:
                self._decode(token, other)
            except JWTError:
                raise TokenInvalid() from exc
            raise TokenKindMismatch(f"Expected a {expected_kind.value} token") from exc

        if not isinstance(claims.get("exp"), int) or not claims.get("sub"):
            raise TokenInvalid()
        if claims.get("type") != expected_kind.value:
            raise TokenKindMismatch(f"Expected a {expected_kind.value} token")
        if self._clock().timestamp() > claims["exp"]:
            raise TokenExpired()
        return claims

    def _decode(self, token: str, kind: TokenKind) -> dict:
        return jwt.decode(
            token,
            self._secrets[kind],
            algorithms=[_ALGORITHM],
            options={"verify_exp": False},
        )


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------


def generate_reset_token() -> str:
    """Return a new cleartext reset token (40 hex chars, 160 bits of entropy)."""
    return secrets.token_hex(20)


def hash_reset_token(token: str) -> str:
    """Return SHA-256(token) as hex. Deterministic so the store can look it up directly."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
