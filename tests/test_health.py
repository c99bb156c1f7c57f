"""
tests/test_health.py -- Integration tests for GET /api/health and the error envelope.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against the test database
  - No authentication required
  - Unknown paths still answer in the error envelope
"""

from __future__ import annotations


def test_health_returns_200_with_components(campus):
    """Health endpoint returns 200 with status, version, and components."""
    resp = campus.client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(campus):
    """Health endpoint is accessible without any authentication headers."""
    resp = campus.client.get("/api/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_unknown_path_uses_error_envelope(campus):
    resp = campus.client.get("/api/nowhere")
    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["statusCode"] == 404
    assert body["error"] == "http_404"
    assert body["data"] is None
