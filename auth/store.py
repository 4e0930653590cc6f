"""
auth/store.py -- SQLAlchemy Core schema, engine setup, and the account store.

Pattern: Repository + Data Mapper. AccountStore is the repository; the
_row_to_* functions are the mappers. Route and service code never touches SQL
directly. The token tables share the same MetaData and engine; their
repositories live in auth/token_store.py.

Security:
  All queries use bound parameters. No f-strings in SQL.

Atomicity:
  Every write is a single statement inside engine.begin(), which commits on
  success and rolls back on any exception. There is no read-modify-write in
  application code, so a refresh racing a logout or a sweep cannot lose an
  update.

Timestamps:
  Stored as DateTime(timezone=True), always written as UTC. SQLite returns
  naive datetimes; _as_utc() reattaches UTC on the way out.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import EmailExists
from auth.models import Account

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'authgate.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(50), nullable=False, server_default="user"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("expires_at", DateTime(timezone=True), nullable=False, index=True),
    Column("revoked", Boolean, nullable=False, default=False),
    Column("revoked_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

token_blacklist = Table(
    "token_blacklist",
    metadata,
    Column("jti", String(64), primary_key=True),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_token_blacklist_expires_at", "expires_at"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str = _DEFAULT_DB_URL, busy_timeout: float = 5.0) -> Engine:
    """Create the shared engine and make sure all auth tables exist.

    busy_timeout (SQLite only) bounds how long a statement waits for a write
    lock before raising OperationalError, so a long sweep cannot stall
    request handling indefinitely.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = busy_timeout
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


def ping(engine: Engine) -> bool:
    """Return True if the database answers a trivial query."""
    with engine.connect() as conn:
        return conn.execute(text("SELECT 1")).scalar() == 1


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Usage:
        engine = create_store_engine("sqlite:///authgate.db")
        accounts = AccountStore(engine)
        account = accounts.create(Account(email="a@example.com", hashed_password=hash_password("pw")))
        accounts.get_by_email("a@example.com")
    """

    # Columns update_account() may touch. Anything else is a programming error.
    _MUTABLE_FIELDS: set = {"hashed_password", "role"}

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, account: Account) -> Account:
        """Insert a new account and return it with id and timestamps filled in.

        Raises EmailExists if the email is already taken. The unique index is
        the final arbiter: two concurrent registrations for the same address
        both pass any pre-check, but only one INSERT succeeds.
        """
        now = utcnow()
        account_id = account.id or str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    users.insert().values(
                        id=account_id,
                        email=account.email,
                        hashed_password=account.hashed_password,
                        role=account.role,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            raise EmailExists(account.email) from exc
        return Account(
            id=account_id,
            email=account.email,
            hashed_password=account.hashed_password,
            role=account.role,
            created_at=now,
            updated_at=now,
        )

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.id).where(users.c.email == email)).first()
        return row is not None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_account(self, account_id: str, **fields) -> bool:
        """Update hashed_password and/or role. Returns True if a row was updated.

        Unknown field names raise ValueError rather than being ignored.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(users.update().where(users.c.id == account_id).values(updated_at=utcnow(), **fields))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )
