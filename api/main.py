"""
api/main.py -- FastAPI application entry point for authgate.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan handles startup (settings, signing keys, database, service, expiry
sweeper) and shutdown (stop sweeper, dispose engine) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.errors import (
    AuthError,
    EmailExists,
    InvalidCredentials,
    RefreshTokenNotFound,
    TokenInvalid,
    TokenRevoked,
    UserNotFound,
)
from auth.keys import ensure_key_pair
from auth.service import AuthService
from auth.store import AccountStore, create_store_engine, ping
from auth.sweeper import ExpirySweeper
from auth.token_store import RefreshTokenStore, RevocationLedger
from auth.tokens import TokenCodec
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authgate.api")

# ---------------------------------------------------------------------------
# Service assembly
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings, engine) -> AuthService:
    """Wire key material, codec and stores into an AuthService.

    Key policy mirrors the SECRET_KEY policy of most dev/prod splits: with
    DEBUG=true a missing key pair is generated on the spot; in production a
    missing or invalid key pair stops startup with KeyMaterialError.
    """
    key_pair = ensure_key_pair(
        settings.jwt_private_key_path,
        settings.jwt_public_key_path,
        bits=settings.rsa_key_bits,
        generate_missing=settings.debug,
    )
    codec = TokenCodec(
        key_pair,
        issuer=settings.jwt_issuer,
        access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
    )
    return AuthService(
        accounts=AccountStore(engine),
        refresh_tokens=RefreshTokenStore(engine),
        ledger=RevocationLedger(engine),
        codec=codec,
        refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
        bcrypt_cost=settings.bcrypt_cost,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine first -- creates tables; the service and sweeper need them.
      2. Service second -- loads (or in dev mode generates) signing keys.
      3. Sweeper last -- references the service's stores.
    """
    settings = get_settings()
    logger.info("authgate API starting up")
    app.state.engine = create_store_engine(settings.database_url, settings.db_busy_timeout_seconds)
    app.state.auth_service = build_auth_service(settings, app.state.engine)
    logger.info("Auth initialized (issuer=%s)", settings.jwt_issuer)
    app.state.sweeper = ExpirySweeper(
        app.state.auth_service.refresh_tokens,
        app.state.auth_service.ledger,
        interval=settings.cleanup_interval_seconds,
        timeout=settings.cleanup_timeout_seconds,
    )
    app.state.sweeper.start()

    yield

    await app.state.sweeper.stop()
    app.state.engine.dispose()
    logger.info("authgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="authgate API",
    description="Registration, login, refresh-token rotation and revocation with RS256 access tokens.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Most specific class first: TokenExpired is found via its TokenInvalid base.
# UserNotFound only surfaces on authenticated routes (refresh, me) after the
# account was deleted, so it is an authentication failure there.
_AUTH_ERROR_STATUS: dict[type[AuthError], int] = {
    InvalidCredentials: 401,
    EmailExists: 409,
    TokenInvalid: 401,
    TokenRevoked: 401,
    RefreshTokenNotFound: 401,
    UserNotFound: 401,
}


def status_for(exc: AuthError) -> int:
    for cls in type(exc).__mro__:
        if cls in _AUTH_ERROR_STATUS:
            return _AUTH_ERROR_STATUS[cls]
    return 401


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map a domain error to its status code by class, never by message text."""
    status_code = status_for(exc)
    response = _error_response(status_code, exc.code, exc.message)
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when the request body fails validation."""
    return _error_response(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Dependencies raise HTTPException with a dict detail ({"code", "message"});
    use it directly rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    else:
        response = _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for infrastructure failures (database, key material).

    The traceback goes to the log only. Clients get an opaque 500 so storage
    or crypto errors never leak through auth error messages.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"], response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database round-trip check."""
    try:
        database = "ok" if ping(request.app.state.engine) else "error"
    except SQLAlchemyError:
        logger.warning("Health check database ping failed", exc_info=True)
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": database})
