"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

Two token sources are checked in priority order:
  1. Session cookie -- set by POST /api/v1/auth/login.
  2. Authorization: Bearer <token> header -- scripted clients.

Both re-hydrate the same SessionClaims through the app's SessionIssuer.

try_get_claims() is the soft variant (returns None on failure).
get_current_claims() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_claims() and raises HTTP 403 if not admin.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import SessionClaims
from auth.tokens import SessionIssuer


def session_token(request: Request, issuer: SessionIssuer) -> str | None:
    """Return the raw session token presented by the request, if any."""
    token: str | None = request.cookies.get(issuer.cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def try_get_claims(request: Request) -> SessionClaims | None:
    """Return the verified session claims for the request, or None. Never raises."""
    issuer: SessionIssuer = request.app.state.auth.issuer
    token = session_token(request, issuer)
    if token is None:
        return None
    return issuer.decode(token)


def get_current_claims(request: Request) -> SessionClaims:
    """Require a valid session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: SessionClaims = Depends(get_current_claims)): ...
    """
    claims = try_get_claims(request)
    if claims is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return claims


def require_admin(request: Request) -> SessionClaims:
    """Require the admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    claims = get_current_claims(request)
    if claims.role != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return claims
