"""
auth/service.py -- Authentication service: register, login, refresh, logout, validate.

Refresh token state machine:
  Active --(rotation | logout)--> Revoked --(sweeper, past expiry)--> Purged

There is no Active -> Active transition. refresh() revokes the presented
token with a conditional UPDATE before it mints the replacement, so:
  - a secret can be exchanged at most once, even under concurrent requests
    (the loser of the race matches zero rows and gets TokenRevoked), and
  - if minting or persisting the replacement fails, the old secret is
    already dead. The client must log in again; it is never left holding
    two valid secrets.

Rotation is not one cross-table transaction. A crash between revoke and
save leaves the session with neither token. Callers must not blindly retry
refresh().

Login enumeration [C1]: unknown email and wrong password both raise
InvalidCredentials, and an unknown email still pays for one bcrypt check
against a dummy hash so the two cases take the same time.

Logout is account-wide: the presented access token is blacklisted by jti and
every refresh token of the account is revoked. Other access tokens for the
account stay valid until they expire (at most access_ttl).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import EmailExists, InvalidCredentials, TokenRevoked, UserNotFound
from auth.models import Account, LoginResult, TokenClaims, TokenPair
from auth.passwords import DEFAULT_COST, hash_password, verify_password
from auth.store import AccountStore, utcnow
from auth.token_store import RefreshTokenStore, RevocationLedger
from auth.tokens import TokenCodec, generate_refresh_token, hash_refresh_token

logger = logging.getLogger("authgate.auth.service")

DEFAULT_ROLE = "user"


class AuthService:
    """Orchestrates the credential hasher, token codec and the three stores.

    Usage:
        service = AuthService(accounts, refresh_tokens, ledger, codec, refresh_ttl=timedelta(days=7))
        service.register("alice@example.com", "Secret123")
        result = service.login("alice@example.com", "Secret123")
        claims = service.validate_token(result.tokens.access_token)
    """

    def __init__(
        self,
        accounts: AccountStore,
        refresh_tokens: RefreshTokenStore,
        ledger: RevocationLedger,
        codec: TokenCodec,
        refresh_ttl: timedelta = timedelta(days=7),
        bcrypt_cost: int = DEFAULT_COST,
    ) -> None:
        self.accounts = accounts
        self.refresh_tokens = refresh_tokens
        self.ledger = ledger
        self.codec = codec
        self.refresh_ttl = refresh_ttl
        self.bcrypt_cost = bcrypt_cost
        # Same cost as real hashes so a miss costs the same as a hit [C1].
        self._dummy_hash = hash_password("authgate_timing_dummy", bcrypt_cost)

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, role: str | None = None) -> Account:
        """Create an account. Raises EmailExists if the email is taken."""
        if self.accounts.email_exists(email):
            raise EmailExists(email)
        account = self.accounts.create(
            Account(
                email=email,
                hashed_password=hash_password(password, self.bcrypt_cost),
                role=role or DEFAULT_ROLE,
            )
        )
        logger.info("Account registered (user_id=%s)", account.id)
        return account

    def login(self, email: str, password: str) -> LoginResult:
        """Check credentials and issue an access + refresh token pair."""
        account = self.accounts.get_by_email(email)
        if account is None:
            # Do NOT return before running bcrypt [C1]
            verify_password(password, self._dummy_hash)
            logger.warning("Login failed: unknown email")
            raise InvalidCredentials()
        if not verify_password(password, account.hashed_password):
            logger.warning("Login failed: wrong password (user_id=%s)", account.id)
            raise InvalidCredentials()

        tokens = self._issue_tokens(account)
        logger.info("Login succeeded (user_id=%s)", account.id)
        return LoginResult(tokens=tokens, account=account)

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh secret for a brand-new token pair.

        Raises RefreshTokenNotFound (unknown or already revoked), TokenExpired,
        TokenRevoked (lost a concurrent rotation race) or UserNotFound.
        """
        token_hash = hash_refresh_token(refresh_token)
        record = self.refresh_tokens.get(token_hash)

        if not self.refresh_tokens.revoke(token_hash):
            logger.warning("Refresh token reuse detected (user_id=%s)", record.user_id)
            raise TokenRevoked("refresh token has already been used")

        account = self.accounts.get_by_id(record.user_id)
        if account is None:
            raise UserNotFound(user_id=record.user_id)

        tokens = self._issue_tokens(account)
        logger.info("Token refreshed (user_id=%s)", account.id)
        return tokens

    # ------------------------------------------------------------------
    # Logout and validation
    # ------------------------------------------------------------------

    def logout(self, access_token: str) -> None:
        """End every session of the token's account.

        Raises TokenInvalid if the access token does not verify (an expired
        token is TokenExpired, a TokenInvalid subclass). Failures while
        blacklisting or revoking are logged, not raised: a partial logout is
        better than refusing to log out.
        """
        claims = self.codec.decode(access_token)

        try:
            self.ledger.add(claims.jti, claims.expires_at)
        except SQLAlchemyError:
            logger.warning("Failed to blacklist access token (jti=%s)", claims.jti, exc_info=True)

        try:
            revoked = self.refresh_tokens.revoke_all(claims.user_id)
        except SQLAlchemyError:
            logger.warning("Failed to revoke refresh tokens (user_id=%s)", claims.user_id, exc_info=True)
            revoked = 0

        logger.info("Logged out (user_id=%s, jti=%s, refresh_revoked=%d)", claims.user_id, claims.jti, revoked)

    def validate_token(self, access_token: str) -> TokenClaims:
        """Return the token's claims if it verifies and is not blacklisted.

        Raises TokenInvalid (TokenExpired for expiry) or TokenRevoked.
        Database errors from the blacklist check propagate unchanged.
        """
        claims = self.codec.decode(access_token)
        if self.ledger.contains(claims.jti):
            raise TokenRevoked()
        return claims

    def get_account(self, user_id: str) -> Account:
        account = self.accounts.get_by_id(user_id)
        if account is None:
            raise UserNotFound(user_id=user_id)
        return account

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_tokens(self, account: Account) -> TokenPair:
        access_token = self.codec.mint(account)
        refresh_token = generate_refresh_token()
        self.refresh_tokens.save(account.id, hash_refresh_token(refresh_token), utcnow() + self.refresh_ttl)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.codec.access_ttl.total_seconds()),
        )
