"""
Derived assessments over stored scan results: TARA and version comparison.
"""
import logging
from typing import List, Tuple

from sqlalchemy.orm import Session

from scanguard.core.exceptions import InvalidTransitionError
from scanguard.models.scan import Scan, ScanStatus
from scanguard.models.vulnerability import Vulnerability
from scanguard.schemas.assessment import CiaScores, ComparisonResponse, TaraResponse
from scanguard.schemas.vulnerability import VulnerabilityResponse
from scanguard.services.risk import attack_paths, cia_scores, risk_band, severity_breakdown
from scanguard.services.scan_service import ScanService

logger = logging.getLogger(__name__)


def finding_key(vuln: Vulnerability) -> Tuple[str, str, str]:
    """Identity of a finding across versions of the same firmware."""
    return (
        (vuln.title or "").strip().lower(),
        (vuln.cwe_id or "").upper(),
        (vuln.affected_component or "").lower(),
    )


class AssessmentService:
    """Builds TARA and comparison views from a scan's stored records."""

    def __init__(self, db: Session):
        self.db = db
        self.scans = ScanService(db)

    def tara(self, scan_id: str) -> TaraResponse:
        scan = self.scans.get_scan(scan_id)
        vulns, _ = self.scans.list_vulnerabilities(scan_id=scan_id)
        breakdown = severity_breakdown(vulns)
        return TaraResponse(
            scan_id=scan.id,
            ecu_name=scan.ecu_name,
            ecu_type=scan.ecu_type.value,
            risk_score=scan.risk_score,
            risk_band=risk_band(scan.risk_score),
            severity_breakdown=breakdown,
            cia=CiaScores(**cia_scores(breakdown)),
            attack_paths=[VulnerabilityResponse.model_validate(v) for v in attack_paths(vulns)],
            total_threats=len(vulns),
        )

    def baselines(self, scan_id: str) -> Tuple[Scan, List[Scan]]:
        """Other complete scans of the same ECU, newest first."""
        scan = self.scans.get_scan(scan_id)
        baselines = (
            self.db.query(Scan)
            .filter(
                Scan.id != scan.id,
                Scan.ecu_name == scan.ecu_name,
                Scan.status == ScanStatus.COMPLETE,
            )
            .order_by(Scan.created_at.desc(), Scan.id)
            .all()
        )
        return scan, baselines

    def compare(self, scan_id: str, baseline_id: str) -> ComparisonResponse:
        """
        Diff findings between a scan and a baseline.

        Raises:
            ScanNotFoundError: either scan is unknown
            ValueError: baseline is the scan itself or another ECU
            InvalidTransitionError: baseline is not complete
        """
        scan = self.scans.get_scan(scan_id)
        baseline = self.scans.get_scan(baseline_id)
        if baseline.id == scan.id:
            raise ValueError("A scan cannot be compared with itself")
        if baseline.ecu_name != scan.ecu_name:
            raise ValueError(
                f"Baseline {baseline.id} is for ECU '{baseline.ecu_name}', not '{scan.ecu_name}'"
            )
        if baseline.status != ScanStatus.COMPLETE:
            raise InvalidTransitionError(f"Baseline {baseline.id} is {baseline.status.value}, not complete")

        current_vulns, _ = self.scans.list_vulnerabilities(scan_id=scan.id)
        baseline_vulns, _ = self.scans.list_vulnerabilities(scan_id=baseline.id)
        baseline_keys = {finding_key(v) for v in baseline_vulns}
        current_keys = {finding_key(v) for v in current_vulns}

        new = [v for v in current_vulns if finding_key(v) not in baseline_keys]
        persisting = [v for v in current_vulns if finding_key(v) in baseline_keys]
        fixed = [v for v in baseline_vulns if finding_key(v) not in current_keys]

        risk_delta = None
        if scan.risk_score is not None and baseline.risk_score is not None:
            risk_delta = scan.risk_score - baseline.risk_score

        logger.info(
            f"Compared scan {scan.id} with baseline {baseline.id}: "
            f"{len(new)} new, {len(fixed)} fixed, {len(persisting)} persisting"
        )
        to_response = VulnerabilityResponse.model_validate
        return ComparisonResponse(
            scan_id=scan.id,
            baseline_id=baseline.id,
            current_version=scan.version,
            baseline_version=baseline.version,
            new_vulnerabilities=[to_response(v) for v in new],
            fixed_vulnerabilities=[to_response(v) for v in fixed],
            persisting_vulnerabilities=[to_response(v) for v in persisting],
            current_risk_score=scan.risk_score,
            baseline_risk_score=baseline.risk_score,
            risk_delta=risk_delta,
        )
