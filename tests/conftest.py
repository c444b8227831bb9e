"""
tests/conftest.py -- Shared test fixtures for AdminGate.

This module provides:
  - FakeClock: a controllable clock injected into every time-dependent
    component, so window and lockout expiry are tested without sleeping
  - store / service: an isolated in-memory PrincipalStore and the full auth
    service wired around it
  - api: a TestClient running the real FastAPI app with a patched lifespan
    that installs the test service instead of the production one

The environment variables below must be set before any api/auth/core import
so get_settings() auto-generates SECRET_KEY (DEBUG) and accepts the
TestClient's Host header.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Principal
from auth.service import AuthService, build_auth_service
from auth.store import PrincipalStore
from auth.tokens import hash_secret
from core.config import get_settings

ADMIN_IDENTIFIER = "admin@example.com"
ADMIN_SECRET = "Correct-Horse-42"


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> Generator[PrincipalStore, None, None]:
    """Isolated named shared-memory store.

    Named URIs let every connection in the process (including TestClient's
    worker threads) see the same in-memory database; the uuid keeps tests
    from sharing state.
    """
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    s = PrincipalStore(url, clock=clock)
    yield s
    s.close()


@pytest.fixture
def service(store: PrincipalStore, clock: FakeClock) -> AuthService:
    return build_auth_service(get_settings(), store=store, clock=clock)


@pytest.fixture
def admin(store: PrincipalStore) -> Principal:
    """A provisioned administrator with a known secret."""
    pid = store.create_principal(
        Principal(identifier=ADMIN_IDENTIFIER, role="admin", hashed_secret=hash_secret(ADMIN_SECRET))
    )
    return store.get_by_id(pid)


# ---------------------------------------------------------------------------
# Application fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    The sweep_task is a long-sleeping coroutine so shutdown's .cancel() has a
    real asyncio.Task to act on.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth = service
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


@pytest.fixture
def api(service: AuthService, admin: Principal) -> Generator[tuple[TestClient, AuthService, str], None, None]:
    """Yield (client, service, admin_token) for API integration tests.

    follow_redirects=False so tests see exactly what the routes return.
    admin_token is a session for the provisioned admin, for use in an
    Authorization: Bearer header.
    """
    app.router.lifespan_context = _patch_lifespan(service)
    admin_token, _ = service.issuer.issue(admin.id, admin.identifier, admin.role)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, service, admin_token
