"""
Tests for API key authentication and RBAC.
"""
from fastapi import status

from scanguard.core.roles import has_permission, normalize_role

SCAN_PAYLOAD = {"ecu_name": "Body Control Module", "ecu_type": "BCM", "architecture": "PowerPC"}


def test_request_without_api_key_fails(client_with_auth):
    """Test that requests without API key are rejected when keys are configured."""
    response = client_with_auth.get("/api/v1/scans")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Missing API key"


def test_request_with_invalid_api_key_fails(client_with_auth):
    response = client_with_auth.get("/api/v1/scans", headers={"X-API-Key": "invalid-key"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "Invalid API key" in response.json()["detail"]


def test_health_does_not_require_api_key(client_with_auth):
    response = client_with_auth.get("/api/v1/health")

    assert response.status_code == status.HTTP_200_OK


def test_viewer_can_read_but_not_create(client_with_auth):
    headers = {"X-API-Key": "viewer-key"}

    assert client_with_auth.get("/api/v1/scans", headers=headers).status_code == status.HTTP_200_OK

    response = client_with_auth.post("/api/v1/scans", json=SCAN_PAYLOAD, headers=headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert "operator" in response.json()["detail"]


def test_operator_can_create_but_not_delete(client_with_auth):
    headers = {"X-API-Key": "operator-key"}

    response = client_with_auth.post("/api/v1/scans", json=SCAN_PAYLOAD, headers=headers)
    assert response.status_code == status.HTTP_201_CREATED
    scan_id = response.json()["id"]

    response = client_with_auth.delete(f"/api/v1/scans/{scan_id}", headers=headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client_with_auth.delete(f"/api/v1/scans/{scan_id}", headers={"X-API-Key": "admin-key"})
    assert response.status_code == status.HTTP_204_NO_CONTENT


def test_operator_cannot_triage_vulnerabilities(client_with_auth):
    """Status updates need security_analyst; the role check runs before the lookup."""
    response = client_with_auth.patch(
        "/api/v1/vulnerabilities/1",
        json={"status": "fixed"},
        headers={"X-API-Key": "operator-key"},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client_with_auth.patch(
        "/api/v1/vulnerabilities/1",
        json={"status": "fixed"},
        headers={"X-API-Key": "analyst-key"},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_maintenance_requires_admin(client_with_auth):
    response = client_with_auth.post(
        "/api/v1/maintenance/stale-scans",
        headers={"X-API-Key": "analyst-key"},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client_with_auth.post(
        "/api/v1/maintenance/stale-scans",
        headers={"X-API-Key": "admin-key"},
    )
    assert response.status_code == status.HTTP_200_OK


def test_role_aliases_and_hierarchy():
    assert normalize_role("analyst") == "security_analyst"
    assert normalize_role("read_only") == "viewer"
    assert normalize_role("superuser") == "viewer"
    assert has_permission("admin", "operator") is True
    assert has_permission("operator", "security_analyst") is False
    assert has_permission("security_analyst", "viewer") is True
