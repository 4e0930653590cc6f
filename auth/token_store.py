"""
auth/token_store.py -- Refresh token store and access token revocation ledger.

RefreshTokenStore holds one row per issued refresh secret, keyed by
SHA-256(secret). A row moves Active -> Revoked (rotation, logout) and is only
deleted by cleanup() once past expires_at. Revoked rows stay until then so a
replayed secret is rejected, never silently treated as unknown-then-reusable.

RevocationLedger holds the jti of every logged-out access token until that
token's own exp. After that, signature/expiry checks reject the token anyway
and the entry is dead weight.

Every mutation is one conditional statement:
  revoke        UPDATE ... WHERE token_hash = ? AND revoked = false
  revoke_all    UPDATE ... WHERE user_id = ? AND revoked = false
  add           INSERT ... ON CONFLICT DO NOTHING
  cleanup       DELETE ... WHERE expires_at < ?

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import RefreshTokenNotFound, TokenExpired
from auth.models import RefreshTokenRecord, RevokedAccessToken
from auth.store import as_utc, refresh_tokens, token_blacklist, utcnow


class RefreshTokenStore:
    """Repository for hashed refresh tokens.

    Usage:
        store = RefreshTokenStore(engine)
        store.save(account.id, hash_refresh_token(secret), expires_at)
        record = store.get(hash_refresh_token(secret))
        store.revoke(record.token_hash)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def save(self, user_id: str, token_hash: str, expires_at: datetime) -> int:
        """Insert a new, unrevoked refresh token record and return its ID."""
        with self.engine.begin() as conn:
            result = conn.execute(
                refresh_tokens.insert().values(
                    user_id=user_id,
                    token_hash=token_hash,
                    expires_at=expires_at,
                    revoked=False,
                    created_at=utcnow(),
                )
            )
        return result.inserted_primary_key[0]

    def get(self, token_hash: str, now: datetime | None = None) -> RefreshTokenRecord:
        """Return the unrevoked record for token_hash.

        Raises RefreshTokenNotFound if no unrevoked row matches (absent and
        revoked look the same to the caller), TokenExpired if the row is past
        its expires_at. The SQL only screens revocation; expiry is checked
        here after the fetch.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                select(refresh_tokens).where(
                    (refresh_tokens.c.token_hash == token_hash) & (refresh_tokens.c.revoked.is_(False))
                )
            ).fetchone()
        if row is None:
            raise RefreshTokenNotFound()
        record = _row_to_refresh_token(row)
        if (now or utcnow()) > record.expires_at:
            raise TokenExpired("refresh token has expired")
        return record

    def revoke(self, token_hash: str) -> bool:
        """Revoke one token. Idempotent.

        Returns True only if this call flipped the row from unrevoked to
        revoked. The first revoked_at is never overwritten.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                update(refresh_tokens)
                .where((refresh_tokens.c.token_hash == token_hash) & (refresh_tokens.c.revoked.is_(False)))
                .values(revoked=True, revoked_at=utcnow())
            )
        return result.rowcount > 0

    def revoke_all(self, user_id: str) -> int:
        """Revoke every active refresh token for user_id. Returns the count revoked."""
        with self.engine.begin() as conn:
            result = conn.execute(
                update(refresh_tokens)
                .where((refresh_tokens.c.user_id == user_id) & (refresh_tokens.c.revoked.is_(False)))
                .values(revoked=True, revoked_at=utcnow())
            )
        return result.rowcount

    def list_for_user(self, user_id: str) -> list[RefreshTokenRecord]:
        """Return all records (active and revoked) for user_id, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(refresh_tokens)
                .where(refresh_tokens.c.user_id == user_id)
                .order_by(refresh_tokens.c.id.desc())
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]

    def cleanup(self, now: datetime | None = None) -> int:
        """Delete every record whose expires_at is before now. Returns rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(delete(refresh_tokens).where(refresh_tokens.c.expires_at < (now or utcnow())))
        return result.rowcount


class RevocationLedger:
    """Blacklist of revoked access token identifiers (jti)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def add(self, jti: str, expires_at: datetime) -> bool:
        """Blacklist jti until expires_at.

        Adding a jti that is already present is not an error. Returns True if
        a new entry was written, False if it was already there.
        """
        values = {"jti": jti, "expires_at": expires_at, "created_at": utcnow()}
        dialect = self.engine.dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(token_blacklist).values(**values).on_conflict_do_nothing(index_elements=["jti"])
        elif dialect == "postgresql":
            stmt = pg_insert(token_blacklist).values(**values).on_conflict_do_nothing(index_elements=["jti"])
        else:
            stmt = token_blacklist.insert().values(**values)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except IntegrityError:
            # Generic dialects: the primary key rejected a duplicate jti.
            return False
        return result.rowcount > 0

    def contains(self, jti: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(token_blacklist.c.jti).where(token_blacklist.c.jti == jti)).first()
        return row is not None

    def get(self, jti: str) -> RevokedAccessToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(select(token_blacklist).where(token_blacklist.c.jti == jti)).fetchone()
        return _row_to_revoked(row) if row is not None else None

    def cleanup(self, now: datetime | None = None) -> int:
        """Delete entries whose token has expired on its own. Returns rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(delete(token_blacklist).where(token_blacklist.c.expires_at < (now or utcnow())))
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_refresh_token(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=as_utc(row.expires_at),
        revoked=bool(row.revoked),
        revoked_at=as_utc(row.revoked_at),
        created_at=as_utc(row.created_at),
    )


def _row_to_revoked(row) -> RevokedAccessToken:
    return RevokedAccessToken(
        jti=row.jti,
        expires_at=as_utc(row.expires_at),
        created_at=as_utc(row.created_at),
    )
