"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; these types only own the shape of the data.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Account:
    """A registered identity.

    hashed_password is a bcrypt hash and must never leave the service layer.
    API response models copy the public fields explicitly rather than dumping
    this dataclass.

    id is None before the record is written to the database.
    """

    email: str
    hashed_password: str
    role: str = "user"
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class RefreshTokenRecord:
    """One outstanding refresh credential.

    token_hash is SHA-256 of the raw secret. The secret itself only exists in
    the login/refresh response and in the client's hands.
    """

    user_id: str
    token_hash: str
    expires_at: datetime
    id: int | None = None
    revoked: bool = False
    revoked_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class RevokedAccessToken:
    """A blacklisted access token, kept until the token would have expired anyway."""

    jti: str
    expires_at: datetime
    created_at: datetime | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Typed view of a verified access token's payload."""

    user_id: str
    email: str
    role: str
    issuer: str
    jti: str
    issued_at: datetime
    not_before: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # seconds until the access token expires
    token_type: str = "Bearer"


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    account: Account
