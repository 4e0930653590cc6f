"""
tests/conftest.py -- Shared test fixtures for authgate unit and integration tests.

This module provides:
  - key_pair: one 2048-bit RSA pair for the whole session (generation is slow)
  - engine: a fresh named shared-memory SQLite database per test
  - codec / accounts / refresh_store / ledger / service: the auth core, wired
    the same way api/main.py wires it, with bcrypt at its minimum cost
  - _patch_lifespan(): wires test objects into app.state, bypassing real startup
  - api_client: TestClient for HTTP integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any api/ import: get_settings() is
read at import time by the limiter and the logging setup.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

# CRITICAL: set before any api/core import. Rate limits off so repeated
# logins across tests are never throttled.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from auth.keys import KeyPair, generate_key_pair
from auth.service import AuthService
from auth.store import AccountStore, create_store_engine
from auth.sweeper import ExpirySweeper
from auth.token_store import RefreshTokenStore, RevocationLedger
from auth.tokens import TokenCodec

TEST_ISSUER = "authgate-test"
TEST_BCRYPT_COST = 4

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _memory_db_url(prefix: str) -> str:
    """Unique named shared-memory URL so tests never see each other's rows."""
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_service(engine, key_pair: KeyPair, access_ttl: timedelta = timedelta(minutes=15)) -> AuthService:
    codec = TokenCodec(key_pair, issuer=TEST_ISSUER, access_ttl=access_ttl)
    return AuthService(
        accounts=AccountStore(engine),
        refresh_tokens=RefreshTokenStore(engine),
        ledger=RevocationLedger(engine),
        codec=codec,
        refresh_ttl=timedelta(days=7),
        bcrypt_cost=TEST_BCRYPT_COST,
    )


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def key_pair() -> KeyPair:
    return generate_key_pair(2048)


@pytest.fixture
def engine():
    eng = create_store_engine(_memory_db_url("test_auth"))
    yield eng
    eng.dispose()


@pytest.fixture
def codec(key_pair: KeyPair) -> TokenCodec:
    return TokenCodec(key_pair, issuer=TEST_ISSUER, access_ttl=timedelta(minutes=15))


@pytest.fixture
def accounts(engine) -> AccountStore:
    return AccountStore(engine)


@pytest.fixture
def refresh_store(engine) -> RefreshTokenStore:
    return RefreshTokenStore(engine)


@pytest.fixture
def ledger(engine) -> RevocationLedger:
    return RevocationLedger(engine)


@pytest.fixture
def service(engine, key_pair: KeyPair) -> AuthService:
    return make_service(engine, key_pair)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(engine, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test objects into app.state so TestClient routes see an
    isolated in-memory database and the session key pair, never the files
    configured for production. The sweeper is started with a long interval
    so it never ticks during a test, but start/stop still run for real.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.auth_service = service
        app.state.sweeper = ExpirySweeper(service.refresh_tokens, service.ledger, interval=99999)
        app.state.sweeper.start()
        yield
        await app.state.sweeper.stop()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(key_pair: KeyPair) -> Generator[TestClient, None, None]:
    """Yield a TestClient bound to the real app with a patched lifespan.

    Module-scoped for speed: tests in one module share a database, so each
    test registers its own email address.
    """
    from api.main import app

    eng = create_store_engine(_memory_db_url("test_api"))
    app.router.lifespan_context = _patch_lifespan(eng, make_service(eng, key_pair))

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    eng.dispose()
