"""
Tests for per-scan result endpoints: findings, compliance, SBOM, logs and assessments.
"""
import pytest
from fastapi import status
from unittest.mock import patch

from scanguard.schemas.analysis import AnalysisResult, SecretFinding
from scanguard.schemas.sbom import SbomComponentCreate
from scanguard.services.analyzers import Analyzer


class SecretsAnalyzer(Analyzer):
    name = "secrets"

    def analyze(self, scan, context):
        return AnalysisResult(
            secret_findings=[SecretFinding(type="api_key", value="AKIA****", location="telematics.c:19")],
            sbom_components=[
                SbomComponentCreate(component_name="OpenSSL", version="1.0.2k", license="Apache-2.0",
                                    vulnerabilities=["CVE-2017-3735", "CVE-2017-3736", "CVE-2018-0739"]),
                SbomComponentCreate(component_name="BusyBox", version="1.24", license="GPL-2.0-only",
                                    vulnerabilities=["CVE-2016-2148"]),
                SbomComponentCreate(component_name="VendorLib", version="5"),
            ],
        )


def _scan(client, **overrides):
    payload = {"ecu_name": "Telematics Unit", "ecu_type": "TCU", "version": "1.0", "deep_analysis": True}
    payload.update(overrides)
    return client.post("/api/v1/scans", json=payload).json()["id"]


def _analyze(client, scan_id, analyze_payload):
    response = client.post(f"/api/v1/scans/{scan_id}/analyze", json=analyze_payload())
    assert response.status_code == status.HTTP_202_ACCEPTED


@pytest.fixture
def completed_scan(client, analyze_payload):
    scan_id = _scan(client)
    _analyze(client, scan_id, analyze_payload)
    return scan_id


def test_scan_vulnerabilities_in_creation_order(client, completed_scan):
    response = client.get(f"/api/v1/scans/{completed_scan}/vulnerabilities")

    assert response.status_code == status.HTTP_200_OK
    titles = [v["title"] for v in response.json()]
    assert titles[0] == "Buffer Overflow in CAN Message Handler"
    assert len(titles) == 5

    response = client.get(f"/api/v1/scans/{completed_scan}/vulnerabilities", params={"severity": "critical"})
    assert [v["cwe_id"] for v in response.json()] == ["CWE-119"]


def test_results_of_unknown_scan_are_404(client):
    for path in ("vulnerabilities", "secrets", "compliance", "compliance/summary", "sbom", "logs", "tara"):
        response = client.get(f"/api/v1/scans/missing-scan/{path}")
        assert response.status_code == status.HTTP_404_NOT_FOUND, path


def test_queued_scan_has_empty_results(client):
    scan_id = _scan(client)

    assert client.get(f"/api/v1/scans/{scan_id}/vulnerabilities").json() == []
    assert client.get(f"/api/v1/scans/{scan_id}/sbom").json() == []
    assert client.get(f"/api/v1/scans/{scan_id}/logs").json() == []


def test_secrets_endpoint(client, analyze_payload):
    scan_id = _scan(client)
    with patch("scanguard.services.analysis_service.get_analyzer", return_value=SecretsAnalyzer()):
        _analyze(client, scan_id, analyze_payload)

    secrets = client.get(f"/api/v1/scans/{scan_id}/secrets").json()

    assert [s["title"] for s in secrets] == ["Hardcoded Secret: api_key"]
    assert secrets[0]["code_snippet"] == "AKIA****"


def test_compliance_results_and_summary(client, completed_scan):
    results = client.get(f"/api/v1/scans/{completed_scan}/compliance").json()
    assert [r["rule_id"] for r in results] == ["CAL-1", "Rule-11.5", "SEC-2"]

    summary = client.get(f"/api/v1/scans/{completed_scan}/compliance/summary").json()
    assert summary["scan_id"] == completed_scan
    assert summary["overall_pass_rate"] == 33
    assert summary["unmatched_results"] == 0
    frameworks = {f["key"]: f for f in summary["frameworks"]}
    assert frameworks["iso21434"]["pass_rate"] == 50
    assert frameworks["misra"]["failed"] == 1
    assert frameworks["autosar"]["total"] == 0
    assert frameworks["autosar"]["pass_rate"] == 0


def test_sbom_derived_fields(client, analyze_payload):
    scan_id = _scan(client)
    with patch("scanguard.services.analysis_service.get_analyzer", return_value=SecretsAnalyzer()):
        _analyze(client, scan_id, analyze_payload)

    components = {c["component_name"]: c for c in client.get(f"/api/v1/scans/{scan_id}/sbom").json()}

    assert components["OpenSSL"]["risk_level"] == "critical"
    assert components["OpenSSL"]["license_status"] == "compliant"
    assert components["BusyBox"]["risk_level"] == "medium"
    assert components["BusyBox"]["license_status"] == "violation"
    assert components["VendorLib"]["risk_level"] == "low"
    assert components["VendorLib"]["license_status"] == "review"


def test_sbom_export(client, completed_scan):
    response = client.get(f"/api/v1/scans/{completed_scan}/sbom/export", params={"format": "cyclonedx"})

    assert response.status_code == status.HTTP_200_OK
    assert "attachment" in response.headers["content-disposition"]
    document = response.json()
    assert document["bomFormat"] == "CycloneDX"
    assert len(document["components"]) == 5

    response = client.get(f"/api/v1/scans/{completed_scan}/sbom/export")
    assert response.json()["spdxVersion"] == "SPDX-2.3"

    response = client.get(f"/api/v1/scans/{completed_scan}/sbom/export", params={"format": "xlsx"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_logs_endpoint(client, completed_scan):
    logs = client.get(f"/api/v1/scans/{completed_scan}/logs").json()

    assert logs[0]["stage"] == "parsing"
    assert logs[-1]["stage"] == "complete"
    assert logs[-1]["message"] == "Stage complete started - Progress: 100%"
    levels = {entry["log_level"] for entry in logs}
    assert "error" in levels  # critical finding highlight


def test_tara_view(client, completed_scan):
    tara = client.get(f"/api/v1/scans/{completed_scan}/tara").json()

    assert tara["risk_score"] == 75
    assert tara["risk_band"] == "high"
    assert tara["total_threats"] == 5
    assert tara["severity_breakdown"]["high"] == 2
    # 1 critical, 2 high, 2 medium
    assert tara["cia"] == {"confidentiality": 54, "integrity": 43, "availability": 65}
    attack_path_titles = {v["title"] for v in tara["attack_paths"]}
    assert "Buffer Overflow in CAN Message Handler" in attack_path_titles
    assert "Debug Interface Enabled in Production" not in attack_path_titles


def test_baselines_and_compare(client, analyze_payload):
    baseline_id = _scan(client, version="1.0")
    _analyze(client, baseline_id, analyze_payload)
    current_id = _scan(client, version="1.1", deep_analysis=False)
    with patch("scanguard.services.analysis_service.get_analyzer", return_value=SecretsAnalyzer()):
        _analyze(client, current_id, analyze_payload)
    _scan(client, ecu_name="Other ECU")

    baselines = client.get(f"/api/v1/scans/{current_id}/baselines").json()
    assert [b["id"] for b in baselines["baselines"]] == [baseline_id]

    comparison = client.get(f"/api/v1/scans/{current_id}/compare", params={"baseline_id": baseline_id}).json()
    assert comparison["current_version"] == "1.1"
    assert comparison["baseline_version"] == "1.0"
    assert [v["title"] for v in comparison["new_vulnerabilities"]] == ["Hardcoded Secret: api_key"]
    assert len(comparison["fixed_vulnerabilities"]) == 5
    assert comparison["persisting_vulnerabilities"] == []
    # secret only: 1 critical -> 45; baseline 75
    assert comparison["risk_delta"] == -30


def test_compare_rejections(client, completed_scan):
    other_ecu = _scan(client, ecu_name="Other ECU")
    queued_same_ecu = _scan(client)

    response = client.get(f"/api/v1/scans/{completed_scan}/compare", params={"baseline_id": completed_scan})
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = client.get(f"/api/v1/scans/{completed_scan}/compare", params={"baseline_id": other_ecu})
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = client.get(f"/api/v1/scans/{completed_scan}/compare", params={"baseline_id": queued_same_ecu})
    assert response.status_code == status.HTTP_409_CONFLICT

    response = client.get(f"/api/v1/scans/{completed_scan}/compare", params={"baseline_id": "missing-scan"})
    assert response.status_code == status.HTTP_404_NOT_FOUND
