"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /auth/register   -- create an account; 201
  POST /auth/login      -- password login; returns access + refresh tokens
  POST /auth/refresh    -- rotate a refresh token; returns a new pair
  POST /auth/logout     -- blacklist the bearer token, revoke all refresh tokens
  GET  /auth/me         -- current account (requires bearer token)

Handlers stay thin: they call AuthService and let AuthError subclasses
propagate. api/main.py maps each error class to its status code, so there is
no error-to-status logic in this module.

Security:
  [H2] POST /login and POST /register are rate-limited per client IP.
  [C1] Unknown email and wrong password produce the same 401; the service
       equalizes timing.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Handlers are plain `def`: FastAPI runs them in its threadpool, so blocking
  bcrypt and database calls never stall the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_claims, require_bearer_token
from auth.models import TokenClaims
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /auth/register:  public
# - POST /auth/login:     public
# - POST /auth/refresh:   public -- the refresh token is the credential
# - POST /auth/logout:    bearer token (verified by the service, not the ledger)
# - GET  /auth/me:        bearer token (get_current_claims)
router = APIRouter()

_LOGIN_LIMIT = get_settings().login_rate_limit


@limiter.limit(_LOGIN_LIMIT)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Create an account. 409 if the email is already registered."""
    account = service.register(body.email, body.password, body.role)
    return UserResponse.from_account(account)


@limiter.limit(_LOGIN_LIMIT)  # [H2]
@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """Authenticate with email and password; return an access + refresh token pair."""
    result = service.login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    tokens = result.tokens
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        user=UserResponse.from_account(result.account),
    )


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    response: Response,
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange a refresh token for a new pair. The presented token is single-use."""
    pair = service.refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenResponse.from_pair(pair)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    token: str = Depends(require_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the presented access token and every refresh token of its account."""
    service.logout(token)
    return MessageResponse(message="logged out successfully")


@router.get("/auth/me", response_model=UserResponse)
def me(
    claims: TokenClaims = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Return the account behind the current access token."""
    return UserResponse.from_account(service.get_account(claims.user_id))
