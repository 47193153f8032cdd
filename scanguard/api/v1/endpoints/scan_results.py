"""
Read endpoints for a scan's results and the views derived from them.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from scanguard.api.v1.errors import domain_error, internal_error
from scanguard.core.auth import APIClient, require_role
from scanguard.core.database import get_db
from scanguard.models.vulnerability import Severity, VulnerabilityStatus
from scanguard.schemas.assessment import BaselineListResponse, ComparisonResponse, TaraResponse
from scanguard.schemas.compliance import ComplianceResultResponse, ComplianceSummaryResponse, FrameworkSummary
from scanguard.schemas.sbom import SbomComponentResponse
from scanguard.schemas.scan import AnalysisLogResponse, ScanResponse
from scanguard.schemas.vulnerability import VulnerabilityResponse
from scanguard.services import sbom_service
from scanguard.services.analysis_service import PII_CWE, SECRET_CWE
from scanguard.services.assessment_service import AssessmentService
from scanguard.services.compliance import framework_summary, group_by_framework, pass_rate
from scanguard.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{scan_id}/vulnerabilities", response_model=List[VulnerabilityResponse])
async def list_scan_vulnerabilities(
    scan_id: str,
    severity: Optional[Severity] = Query(None, description="Filter by severity"),
    status_filter: Optional[VulnerabilityStatus] = Query(None, alias="status", description="Filter by triage status"),
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Vulnerabilities of a scan in creation order."""
    try:
        items, _ = ScanService(db).list_vulnerabilities(scan_id=scan_id, severity=severity, status=status_filter)
        return [VulnerabilityResponse.model_validate(v) for v in items]
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("list vulnerabilities", e)


@router.get("/{scan_id}/secrets", response_model=List[VulnerabilityResponse])
async def list_scan_secrets(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Hard-coded secrets (CWE-798) and personal data exposures (CWE-359)."""
    try:
        items, _ = ScanService(db).list_vulnerabilities(scan_id=scan_id)
        return [
            VulnerabilityResponse.model_validate(v) for v in items
            if (v.cwe_id or "").upper() in (SECRET_CWE, PII_CWE)
        ]
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("list secrets", e)


@router.get("/{scan_id}/compliance", response_model=List[ComplianceResultResponse])
async def list_scan_compliance(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    try:
        results = ScanService(db).list_compliance_results(scan_id)
        return [ComplianceResultResponse.model_validate(r) for r in results]
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("list compliance results", e)


@router.get("/{scan_id}/compliance/summary", response_model=ComplianceSummaryResponse)
async def get_compliance_summary(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Pass rate per canonical framework. Frameworks without results report 0%."""
    try:
        results = ScanService(db).list_compliance_results(scan_id)
        _, unmatched = group_by_framework(results)
        return ComplianceSummaryResponse(
            scan_id=scan_id,
            frameworks=[FrameworkSummary(**fw) for fw in framework_summary(results)],
            overall_pass_rate=pass_rate(results),
            unmatched_results=len(unmatched),
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("summarize compliance", e)


@router.get("/{scan_id}/sbom", response_model=List[SbomComponentResponse])
async def list_scan_sbom(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """SBOM components with derived risk level and license status."""
    try:
        components = ScanService(db).list_sbom_components(scan_id)
        return [sbom_service.to_response(c) for c in components]
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("list SBOM components", e)


@router.get("/{scan_id}/sbom/export")
async def export_scan_sbom(
    scan_id: str,
    format: str = Query("spdx", description="Export format: spdx or cyclonedx"),
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Download the SBOM as an SPDX 2.3 or CycloneDX 1.5 JSON document."""
    try:
        service = ScanService(db)
        scan = service.get_scan(scan_id)
        document = sbom_service.export_sbom(scan, service.list_sbom_components(scan_id), format)
        filename = sbom_service.export_filename(scan, format.lower())
        logger.info(f"Exported SBOM for scan {scan_id} as {format}")
        return JSONResponse(
            content=document,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("export SBOM", e)


@router.get("/{scan_id}/logs", response_model=List[AnalysisLogResponse])
async def list_scan_logs(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Pipeline log in append order."""
    try:
        return [AnalysisLogResponse.model_validate(entry) for entry in ScanService(db).list_logs(scan_id)]
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("list analysis logs", e)


@router.get("/{scan_id}/tara", response_model=TaraResponse)
async def get_scan_tara(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Threat analysis view: CIA impact, attack paths and risk band."""
    try:
        return AssessmentService(db).tara(scan_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("build TARA view", e)


@router.get("/{scan_id}/baselines", response_model=BaselineListResponse)
async def list_scan_baselines(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Other complete scans of the same ECU, usable as comparison baselines."""
    try:
        scan, baselines = AssessmentService(db).baselines(scan_id)
        return BaselineListResponse(
            scan_id=scan.id,
            ecu_name=scan.ecu_name,
            baselines=[ScanResponse.model_validate(b) for b in baselines],
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("list baselines", e)


@router.get("/{scan_id}/compare", response_model=ComparisonResponse)
async def compare_scan(
    scan_id: str,
    baseline_id: str = Query(..., description="Scan id of the baseline version"),
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """New, fixed and persisting vulnerabilities relative to a baseline scan."""
    try:
        return AssessmentService(db).compare(scan_id, baseline_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("compare scans", e)
