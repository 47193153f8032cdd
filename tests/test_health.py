"""
Tests for health check endpoints.
"""
from unittest.mock import MagicMock

from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from scanguard.core.database import get_db
from scanguard.main import app


def test_health_endpoint_returns_ok(client):
    """Test that /api/v1/health returns ok when DB is healthy."""
    response = client.get("/api/v1/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["ok"] is True
    assert data["db"] is True
    assert "environment" in data
    assert data["analysis_mode"] == "mock"
    assert data["event_subscribers"] == 0


def test_health_endpoint_with_db_failure():
    """Test that /api/v1/health returns 503 when DB is down."""
    def failing_get_db():
        db = MagicMock()
        db.execute.side_effect = SQLAlchemyError("Simulated DB failure")
        yield db

    app.dependency_overrides[get_db] = failing_get_db

    try:
        client = TestClient(app)
        response = client.get("/api/v1/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["detail"] == "Database connection failed"
    finally:
        app.dependency_overrides.clear()


def test_health_reports_unavailable_analyzer(client, monkeypatch):
    """ANALYSIS_MODE=llm without a gateway key is reported, not fatal."""
    from scanguard.core.config import settings
    monkeypatch.setattr(settings, "ANALYSIS_MODE", "llm")

    response = client.get("/api/v1/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["analysis_mode"] == "unavailable"


def test_health_endpoint_trace_id_header(client):
    """Test that health endpoint includes trace_id in response headers."""
    response = client.get("/api/v1/health")

    # RequestLoggingMiddleware should add X-Trace-ID header
    assert "X-Trace-ID" in response.headers
    assert len(response.headers["X-Trace-ID"]) > 0


def test_liveness_and_root(client):
    assert client.get("/health").json() == {"status": "ok"}

    root = client.get("/").json()
    assert root["docs"] == "/docs"
    assert "ScanGuard" in root["message"]
