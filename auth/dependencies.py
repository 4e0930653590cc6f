"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer authentication.

Only the Authorization: Bearer <token> header is accepted. The token goes
through AuthService.validate_token(), so signature, expiry and the revocation
ledger are all checked on every request.

get_current_claims() raises HTTP 401 on any failure.
require_role() wraps it and raises HTTP 403 if the role is not allowed.

Layer rule: auth/dependencies.py may import from fastapi (for
Depends/HTTPException/Request) because it is part of the FastAPI dependency
injection system. It does not import from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.errors import AuthError
from auth.models import TokenClaims
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header, or None.

    The scheme is matched case-insensitively.
    """
    header = request.headers.get("Authorization", "")
    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


def require_bearer_token(request: Request) -> str:
    token = extract_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "missing_token", "message": "Missing or malformed Authorization header."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_current_claims(
    token: str = Depends(require_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> TokenClaims:
    """Require a valid, unrevoked access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    try:
        return service.validate_token(token)
    except AuthError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def require_role(*roles: str) -> Callable[..., TokenClaims]:
    """Build a dependency that admits only the given roles.

    Usage:
        @router.get("/admin", dependencies=[Depends(require_role("admin"))])
    """
    allowed = set(roles)

    def dependency(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        if claims.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"Requires one of roles: {sorted(allowed)}."},
            )
        return claims

    return dependency
