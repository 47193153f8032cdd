"""
Fleet overview for the dashboard landing page.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session

from scanguard.models.compliance_result import ComplianceResult
from scanguard.models.scan import Scan, ScanStatus
from scanguard.models.vulnerability import OPEN_STATUSES, Severity, Vulnerability
from scanguard.schemas.dashboard import DashboardSummaryResponse
from scanguard.schemas.scan import ScanResponse
from scanguard.schemas.vulnerability import VulnerabilityResponse
from scanguard.services.compliance import pass_rate
from scanguard.services.scan_service import IN_FLIGHT_STATUSES

RECENT_SCANS = 5
TOP_VULNERABILITIES = 10


def dashboard_summary(db: Session) -> DashboardSummaryResponse:
    status_counts = dict(db.query(Scan.status, func.count(Scan.id)).group_by(Scan.status).all())
    total = sum(status_counts.values())

    severity_counts = dict(
        db.query(Vulnerability.severity, func.count(Vulnerability.id))
        .group_by(Vulnerability.severity)
        .all()
    )
    breakdown = {s.value: severity_counts.get(s, 0) for s in Severity}

    critical_open = (
        db.query(func.count(Vulnerability.id))
        .filter(Vulnerability.severity == Severity.CRITICAL, Vulnerability.status.in_(OPEN_STATUSES))
        .scalar()
    )

    average_risk = (
        db.query(func.avg(Scan.risk_score))
        .filter(Scan.status == ScanStatus.COMPLETE, Scan.risk_score.isnot(None))
        .scalar()
    )

    # Average of per-scan pass rates, over scans that have compliance results
    results_by_scan = {}
    for result in db.query(ComplianceResult).all():
        results_by_scan.setdefault(result.scan_id, []).append(result)
    rates = [pass_rate(results) for results in results_by_scan.values()]
    average_compliance = round(sum(rates) / len(rates), 1) if rates else None

    recent = db.query(Scan).order_by(Scan.created_at.desc(), Scan.id).limit(RECENT_SCANS).all()
    top = (
        db.query(Vulnerability)
        .filter(Vulnerability.status.in_(OPEN_STATUSES), Vulnerability.cvss_score.isnot(None))
        .order_by(Vulnerability.cvss_score.desc(), Vulnerability.id)
        .limit(TOP_VULNERABILITIES)
        .all()
    )

    return DashboardSummaryResponse(
        total_scans=total,
        active_scans=sum(status_counts.get(s, 0) for s in IN_FLIGHT_STATUSES),
        complete_scans=status_counts.get(ScanStatus.COMPLETE, 0),
        failed_scans=status_counts.get(ScanStatus.FAILED, 0),
        critical_open_vulnerabilities=critical_open or 0,
        severity_breakdown=breakdown,
        average_risk_score=round(float(average_risk), 1) if average_risk is not None else None,
        average_compliance_rate=average_compliance,
        recent_scans=[ScanResponse.model_validate(s) for s in recent],
        top_vulnerabilities=[VulnerabilityResponse.model_validate(v) for v in top],
    )
