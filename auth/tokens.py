"""
auth/tokens.py -- Access token codec and refresh token secrets.

Security design decisions:
  Access tokens: python-jose with RS256. Tokens are signed with the private
       key and carry sub (account id), email, role, iss, jti, iat, nbf, exp.
       Only the public key is needed to verify, so verification-only services
       never hold signing material.

  Algorithm pinning: the header's alg is checked against RS256 BEFORE the
       signature is verified, and decode() is only ever given ["RS256"]. A
       token claiming HS256 (classic key-confusion downgrade, where the public
       key is used as an HMAC secret) or "none" is rejected outright.

  JTI: secrets.token_hex(16) -- 128 bits rendered as 32 hex chars. Collisions
       are cryptographically negligible and not defended against.

  Refresh tokens: opaque, not JWTs. secrets.token_urlsafe(32) gives 256 bits
       of entropy. Only SHA-256(secret) is stored. bcrypt's intentional
       slowness is unnecessary for high-entropy secrets, and a deterministic
       hash allows O(1) lookup by unique index.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import TokenExpired, TokenInvalid
from auth.keys import KeyPair
from auth.models import Account, TokenClaims

ALGORITHM = "RS256"

_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": True,
    "verify_nbf": True,
    "verify_iat": True,
    "verify_iss": True,
    "require_exp": True,
    "require_iat": True,
    "require_nbf": True,
    "require_iss": True,
    "require_sub": True,
    "require_jti": True,
}


@dataclass(frozen=True)
class VerifiedToken:
    """A token whose signature, issuer and time window have been checked."""

    header: dict[str, Any]
    payload: dict[str, Any]


class TokenCodec:
    """Mints and verifies RS256 access tokens.

    Usage:
        codec = TokenCodec(key_pair, issuer="authgate", access_ttl=timedelta(minutes=15))
        token = codec.mint(account)
        claims = codec.extract_claims(codec.verify(token))
    """

    def __init__(self, key_pair: KeyPair, issuer: str, access_ttl: timedelta) -> None:
        self._private_pem = key_pair.private_pem
        self._public_pem = key_pair.public_pem
        self.issuer = issuer
        self.access_ttl = access_ttl

    def mint(self, account: Account, ttl: timedelta | None = None) -> str:
        """Encode a signed access token for the account.

        ttl overrides the configured access-token lifetime for this token only.
        """
        now = datetime.now(timezone.utc)
        expires_at = now + (ttl if ttl is not None else self.access_ttl)
        payload = {
            "sub": str(account.id),
            "email": account.email,
            "role": account.role,
            "iss": self.issuer,
            "jti": generate_jti(),
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self._private_pem, algorithm=ALGORITHM)

    def verify(self, token: str) -> VerifiedToken:
        """Verify signature, algorithm, issuer and time window.

        Raises TokenExpired for an expired token and TokenInvalid for anything
        else. Never returns an unverified payload.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise TokenInvalid(f"malformed token: {exc}") from exc

        alg = header.get("alg")
        if alg != ALGORITHM:
            raise TokenInvalid(f"unexpected signing method: {alg}")

        try:
            payload = jwt.decode(
                token,
                self._public_pem,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options=_DECODE_OPTIONS,
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise TokenInvalid(f"invalid token: {exc}") from exc
        # jose compares exp against whole seconds; use the full-precision clock.
        exp = payload.get("exp")
        if isinstance(exp, (int, float)) and not isinstance(exp, bool) and exp <= time.time():
            raise TokenExpired()
        return VerifiedToken(header=header, payload=payload)

    def extract_claims(self, verified: VerifiedToken) -> TokenClaims:
        """Convert a verified payload into a typed TokenClaims record.

        Every claim is type-checked. A token with a correct signature but a
        missing or mistyped claim is still TokenInvalid.
        """
        payload = verified.payload
        try:
            return TokenClaims(
                user_id=_require_str(payload, "sub"),
                email=_require_str(payload, "email"),
                role=_require_str(payload, "role"),
                issuer=_require_str(payload, "iss"),
                jti=_require_str(payload, "jti"),
                issued_at=_require_time(payload, "iat"),
                not_before=_require_time(payload, "nbf"),
                expires_at=_require_time(payload, "exp"),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise TokenInvalid(f"invalid token claims: {exc}") from exc

    def decode(self, token: str) -> TokenClaims:
        return self.extract_claims(self.verify(token))


def _require_str(payload: dict[str, Any], name: str) -> str:
    value = payload[name]
    if not isinstance(value, str) or not value:
        raise TypeError(f"claim {name!r} must be a non-empty string")
    return value


def _require_time(payload: dict[str, Any], name: str) -> datetime:
    value = payload[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"claim {name!r} must be a numeric timestamp")
    return datetime.fromtimestamp(value, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Identifiers and refresh secrets
# ---------------------------------------------------------------------------


def generate_jti() -> str:
    return secrets.token_hex(16)


def generate_refresh_token() -> str:
    """Return a new opaque refresh secret (256 bits, URL-safe base64, no padding)."""
    return secrets.token_urlsafe(32)


def hash_refresh_token(secret: str) -> str:
    """Return SHA-256(secret) as hex -- the only form of the secret that is stored."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()
