"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' while the store answers
  - a failing store degrades the status instead of erroring
  - no authentication required
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.exc import OperationalError


def test_health_returns_200_with_components(api):
    """Health endpoint returns 200 with status, version, and components."""
    client, _, _ = api
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "0.1.0"
    assert data["components"] == {"app": "ok", "database": "ok"}


def test_health_reports_store_outage(api):
    """An unreachable store is reported as degraded, not as a 5xx."""
    client, service, _ = api
    with patch.object(service.store, "ping", side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
        resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"]["database"] == "error"


def test_health_no_auth_required(api):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert "set-cookie" not in resp.headers
