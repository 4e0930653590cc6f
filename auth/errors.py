"""
auth/errors.py -- Exception taxonomy for the authentication core.

Every domain failure is its own class so the HTTP layer can map errors to
status codes by type, never by message text. Each class carries a stable
machine-readable `code` used in the API error envelope.

Infrastructure failures are deliberately NOT part of this hierarchy:
KeyMaterialError covers unreadable or invalid signing keys, and database
failures surface as SQLAlchemy exceptions. Neither is ever converted into
TokenInvalid -- a broken database must not look like a bad token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for domain-level authentication failures."""

    code: str = "auth_error"
    default_message: str = "authentication failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    # Same error for unknown email and wrong password.
    code = "invalid_credentials"
    default_message = "invalid credentials"


class EmailExists(AuthError):
    code = "email_exists"
    default_message = "email already registered"

    def __init__(self, email: str = "") -> None:
        self.email = email
        super().__init__(f"email {email} already exists" if email else None)


class TokenInvalid(AuthError):
    code = "token_invalid"
    default_message = "invalid token"


class TokenExpired(TokenInvalid):
    """Expired token. Subclasses TokenInvalid so signature/expiry checks fail uniformly."""

    code = "token_expired"
    default_message = "token has expired"


class TokenRevoked(AuthError):
    code = "token_revoked"
    default_message = "token has been revoked"


class RefreshTokenNotFound(AuthError):
    code = "refresh_token_not_found"
    default_message = "refresh token not found"


class UserNotFound(AuthError):
    code = "user_not_found"
    default_message = "user not found"

    def __init__(self, user_id: str = "", email: str = "") -> None:
        self.user_id = user_id
        self.email = email
        if email:
            message = f"user with email {email} not found"
        elif user_id:
            message = f"user with id {user_id} not found"
        else:
            message = None
        super().__init__(message)


class KeyMaterialError(Exception):
    """Signing key could not be generated, read, parsed or written."""
