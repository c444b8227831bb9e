"""
api/main.py -- FastAPI application entry point for AdminGate.

Run with:  uvicorn asgi:app --reload

Middleware stack (registration order):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route, per-address limits from api.limiter
  4. refresh_session       -- sliding re-issue of session cookies
  5. log_requests          -- one access-log line per request

Lifespan handles startup (auth service, limiter sweep task) and shutdown
(cancel sweep task, dispose the store's connection pool) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.dependencies import get_current_claims
from auth.models import SessionClaims
from auth.service import build_auth_service
from core.config import get_settings

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("admingate.api")

# ---------------------------------------------------------------------------
# Background sweep task
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval: float) -> None:
    """Drop expired, unlocked ephemeral limiter entries every `interval` seconds.

    Runs as a background asyncio task started in lifespan startup and
    cancelled on shutdown. CancelledError from task.cancel() propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval)
        removed = app.state.auth.limiter.sweep()
        if removed:
            logger.debug("Rate limiter sweep removed %d entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The sweep task references app.state.auth, so the auth service
    must exist before the task starts.
    """
    settings = get_settings()
    logger.info("AdminGate API starting up")
    app.state.auth = build_auth_service(settings)
    logger.info("Auth initialized (principals_present=%s)", app.state.auth.store.has_principals())
    app.state.sweep_task = asyncio.create_task(_sweep_loop(app, settings.rate_limit_sweep_seconds))

    yield

    app.state.sweep_task.cancel()
    app.state.auth.close()
    logger.info("AdminGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AdminGate API",
    description="Administrator credential verification with brute-force lockout and signed sessions.",
    version=_VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by session-protected routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Sliding session middleware
#
# A request that presents a valid session cookie older than the refresh
# window gets a freshly signed cookie on its response. Responses that already
# set or clear the cookie themselves (login, logout) are left alone.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def refresh_session(request: Request, call_next):
    response = await call_next(request)
    auth = getattr(request.app.state, "auth", None)
    if auth is None or response.status_code >= 400:
        return response
    issuer = auth.issuer
    token = request.cookies.get(issuer.cookie_name)
    if not token:
        return response
    if any(v.startswith(f"{issuer.cookie_name}=") for v in response.headers.getlist("set-cookie")):
        return response
    claims = issuer.decode(token)
    if claims is not None and issuer.needs_refresh(claims):
        new_token, _ = issuer.refresh(claims)
        issuer.set_cookie(response, new_token)
    return response


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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Session-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(claims: SessionClaims = Depends(get_current_claims)):
    """Swagger UI -- requires a session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="AdminGate API")


@app.get("/redoc", include_in_schema=False)
async def redoc(claims: SessionClaims = Depends(get_current_claims)):
    """ReDoc UI -- requires a session."""
    return get_redoc_html(openapi_url="/openapi.json", title="AdminGate API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when the per-address HTTP throttle trips."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="too_many_requests",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for HTTPExceptions raised by routes and dependencies.

    When detail is already a structured dict it is used directly as the error
    field rather than stringified.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Map durable store failures outside the verifier (admin routes) to 503."""
    logger.error("Store error on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(
            error=ErrorDetail(
                code="infrastructure_error",
                message="The credential store is unavailable.",
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and durable store reachability."""
    database = "ok"
    try:
        request.app.state.auth.store.ping()
    except SQLAlchemyError:
        database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=_VERSION,
        components={"app": "ok", "database": database},
    )
