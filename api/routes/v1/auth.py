"""
api/routes/v1/auth.py -- Login, session and lockout administration endpoints.

Routes:
  POST /api/v1/auth/login                            -- verify credentials; sets session cookie
  POST /api/v1/auth/logout                           -- clears cookie
  GET  /api/v1/auth/me                               -- current session claims (requires auth)
  GET  /api/v1/auth/lockouts/{identifier}            -- lockout state (admin only)
  POST /api/v1/auth/lockouts/{identifier}/unlock     -- operator unlock (admin only)
  GET  /api/v1/auth/events                           -- recent auth events (admin only)

Security:
  POST /login is throttled per client address by slowapi, in front of the
  per-identifier limiter the verifier applies.
  invalid_credentials uses one message whether the identifier is unknown or
  the secret is wrong.
  Cache-Control: no-store on every login response.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import (
    AuthEventResponse,
    ErrorDetail,
    ErrorResponse,
    LockoutStatusResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
)
from auth.dependencies import get_current_claims, require_admin, try_get_claims
from auth.identity import extract_origin, normalize_identifier
from auth.models import DenialReason, SessionClaims, VerificationResult
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login:                         public
# - POST /api/v1/auth/logout:                        public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:                            requires session (get_current_claims)
# - GET  /api/v1/auth/lockouts/{identifier}:         requires admin (require_admin)
# - POST /api/v1/auth/lockouts/{identifier}/unlock:  requires admin (require_admin)
# - GET  /api/v1/auth/events:                        requires admin (require_admin)
router = APIRouter()

_DENIAL_STATUS: dict[DenialReason, int] = {
    DenialReason.invalid_credentials: 401,
    DenialReason.account_locked: 423,
    DenialReason.rate_limited: 429,
    DenialReason.infrastructure_error: 503,
}


def _denial_message(result: VerificationResult) -> str:
    minutes = result.retry_after_minutes or 0
    if result.reason is DenialReason.account_locked:
        return f"Account is locked due to multiple failed login attempts. Try again in {minutes} minutes."
    if result.reason is DenialReason.rate_limited:
        return f"Too many login attempts. Try again in {minutes} minutes."
    if result.reason is DenialReason.infrastructure_error:
        return "Authentication is temporarily unavailable. Please try again later."
    return "Invalid email or password."


def _denial_response(result: VerificationResult) -> JSONResponse:
    resp = JSONResponse(
        status_code=_DENIAL_STATUS[result.reason],
        content=ErrorResponse(
            error=ErrorDetail(code=result.reason.value, message=_denial_message(result))
        ).model_dump(),
    )
    if result.reason in (DenialReason.rate_limited, DenialReason.account_locked) and result.retry_after_minutes:
        resp.headers["Retry-After"] = str(result.retry_after_minutes * 60)
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)  # must be ABOVE @router so SlowAPIMiddleware finds the route limit by name
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest, background_tasks: BackgroundTasks) -> JSONResponse:
    """Verify an identifier/secret pair and start a session.

    Every outcome is decided by CredentialVerifier; this handler only maps the
    result onto HTTP. The durable audit event is written after the response
    via a background task so a slow or failing audit write never delays or
    fails the login.
    """
    auth: AuthService = request.app.state.auth
    result = auth.verifier.verify(body.identifier, body.secret, request.headers)
    background_tasks.add_task(auth.audit.record_verification, result)

    if not result.granted:
        resp = _denial_response(result)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            identifier=result.claims.identifier,
            role=result.claims.role,
            expires_at=result.claims.expires_at,
            redirect_to=get_settings().post_login_redirect,
        ).model_dump(mode="json"),
    )
    auth.issuer.set_cookie(resp, result.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout(request: Request, background_tasks: BackgroundTasks) -> JSONResponse:
    """Clear the session cookie."""
    auth: AuthService = request.app.state.auth
    claims = try_get_claims(request)
    if claims is not None:
        background_tasks.add_task(auth.audit.record, claims.identifier, "logout", "ok", extract_origin(request.headers))
    resp = JSONResponse(content={"message": "Logged out."})
    auth.issuer.clear_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: SessionClaims = Depends(get_current_claims)) -> MeResponse:
    """Return the claims carried by the current session."""
    return MeResponse(
        principal_id=claims.principal_id,
        identifier=claims.identifier,
        role=claims.role,
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
    )


# ---------------------------------------------------------------------------
# Lockout administration (admin only)
# ---------------------------------------------------------------------------


@router.get("/auth/lockouts/{identifier}", response_model=LockoutStatusResponse)
def lockout_status(
    request: Request,
    identifier: str,
    claims: SessionClaims = Depends(require_admin),
) -> LockoutStatusResponse:
    """Report both lockout layers for an identifier. Admin only."""
    auth: AuthService = request.app.state.auth
    normalized = normalize_identifier(identifier)
    ephemeral = auth.limiter.status(normalized)
    principal = auth.store.get_by_identifier(normalized)
    return LockoutStatusResponse(
        identifier=normalized,
        exists=principal is not None,
        ephemeral_locked=ephemeral.is_locked,
        ephemeral_attempts=ephemeral.attempts,
        ephemeral_locked_until=ephemeral.locked_until,
        failed_attempts=principal.failed_attempts if principal else 0,
        locked_until=auth.ledger.locked_until(principal) if principal else None,
        last_login_at=principal.last_login_at if principal else None,
        last_login_origin=principal.last_login_origin if principal else None,
    )


@router.post("/auth/lockouts/{identifier}/unlock", response_model=LockoutStatusResponse)
def unlock(
    request: Request,
    identifier: str,
    claims: SessionClaims = Depends(require_admin),
) -> LockoutStatusResponse:
    """Clear the durable lock and the ephemeral entry for a principal. Admin only."""
    auth: AuthService = request.app.state.auth
    normalized = normalize_identifier(identifier)
    principal = auth.store.get_by_identifier(normalized)
    if principal is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Principal not found."},
        )
    auth.ledger.unlock(principal)
    auth.limiter.reset(normalized)
    auth.audit.record(normalized, "unlock", "ok", extract_origin(request.headers))
    return lockout_status(request, normalized, claims)


@router.get("/auth/events", response_model=list[AuthEventResponse])
def list_events(
    request: Request,
    identifier: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    claims: SessionClaims = Depends(require_admin),
) -> list[AuthEventResponse]:
    """Return recent auth events, newest first. Admin only."""
    auth: AuthService = request.app.state.auth
    events = auth.store.list_events(identifier=identifier, limit=limit)
    return [
        AuthEventResponse(
            id=e.id,
            identifier=e.identifier,
            action=e.action,
            outcome=e.outcome,
            origin=e.origin,
            created_at=e.created_at or "",
        )
        for e in events
    ]
