"""
Tests for vulnerability reads, triage updates and record immutability.
"""
import pytest
from fastapi import status

from scanguard.core.exceptions import ImmutableRecordError
from scanguard.models import ComplianceResult, SbomComponent, Vulnerability


@pytest.fixture
def completed_scan(client, analyze_payload):
    scan_id = client.post(
        "/api/v1/scans",
        json={"ecu_name": "Powertrain ECU", "ecu_type": "Engine", "deep_analysis": True},
    ).json()["id"]
    client.post(f"/api/v1/scans/{scan_id}/analyze", json=analyze_payload())
    return scan_id


def test_list_vulnerabilities_across_scans(client, completed_scan):
    response = client.get("/api/v1/vulnerabilities")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total"] == 5
    assert data["limit"] == 50
    assert all(item["status"] == "new" for item in data["items"])

    response = client.get("/api/v1/vulnerabilities", params={"severity": "high", "scan_id": completed_scan})
    titles = {item["title"] for item in response.json()["items"]}
    assert titles == {"Hardcoded API Key Detected", "Debug Interface Enabled in Production"}

    response = client.get("/api/v1/vulnerabilities", params={"limit": 2, "offset": 4})
    assert len(response.json()["items"]) == 1


def test_list_vulnerabilities_unknown_scan(client):
    response = client.get("/api/v1/vulnerabilities", params={"scan_id": "missing-scan"})

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_get_vulnerability(client, completed_scan):
    vuln_id = client.get("/api/v1/vulnerabilities").json()["items"][0]["id"]

    response = client.get(f"/api/v1/vulnerabilities/{vuln_id}")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["scan_id"] == completed_scan
    assert client.get("/api/v1/vulnerabilities/999999").status_code == status.HTTP_404_NOT_FOUND


def test_any_status_can_follow_any_other(client, completed_scan):
    vuln_id = client.get("/api/v1/vulnerabilities").json()["items"][0]["id"]

    for new_status in ("fixed", "new", "false_positive", "reopened", "risk_accepted"):
        response = client.patch(f"/api/v1/vulnerabilities/{vuln_id}", json={"status": new_status})
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == new_status

    response = client.get("/api/v1/vulnerabilities", params={"status": "risk_accepted"})
    assert [item["id"] for item in response.json()["items"]] == [vuln_id]


def test_status_outside_enum_is_rejected(client, completed_scan):
    vuln_id = client.get("/api/v1/vulnerabilities").json()["items"][0]["id"]

    response = client.patch(f"/api/v1/vulnerabilities/{vuln_id}", json={"status": "wont_fix"})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_only_status_is_writable(db_session, completed_scan):
    vuln = db_session.query(Vulnerability).filter_by(scan_id=completed_scan).first()

    vuln.title = "Renamed"
    with pytest.raises(ImmutableRecordError, match="only status can change"):
        db_session.commit()
    db_session.rollback()


def test_compliance_and_sbom_records_are_immutable(db_session, completed_scan):
    result = db_session.query(ComplianceResult).filter_by(scan_id=completed_scan, rule_id="CAL-1").one()
    result.status = "fail"
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()

    component = db_session.query(SbomComponent).filter_by(scan_id=completed_scan, component_name="FreeRTOS").one()
    component.license = "GPL-3.0"
    with pytest.raises(ImmutableRecordError):
        db_session.commit()
    db_session.rollback()
