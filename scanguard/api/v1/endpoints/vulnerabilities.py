"""
Cross-scan vulnerability list and reviewer triage.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from scanguard.api.v1.errors import domain_error, internal_error
from scanguard.core.auth import APIClient, require_role
from scanguard.core.database import get_db
from scanguard.models.vulnerability import Severity, VulnerabilityStatus
from scanguard.schemas.vulnerability import (
    VulnerabilityListResponse,
    VulnerabilityResponse,
    VulnerabilityStatusUpdate,
)
from scanguard.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=VulnerabilityListResponse)
async def list_vulnerabilities(
    severity: Optional[Severity] = Query(None, description="Filter by severity"),
    status_filter: Optional[VulnerabilityStatus] = Query(None, alias="status", description="Filter by triage status"),
    scan_id: Optional[str] = Query(None, description="Restrict to one scan"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    try:
        items, total = ScanService(db).list_vulnerabilities(
            scan_id=scan_id,
            severity=severity,
            status=status_filter,
            limit=limit,
            offset=offset,
        )
        return VulnerabilityListResponse(
            items=[VulnerabilityResponse.model_validate(v) for v in items],
            total=total,
            limit=limit,
            offset=offset,
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("list vulnerabilities", e)


@router.get("/{vulnerability_id}", response_model=VulnerabilityResponse)
async def get_vulnerability(
    vulnerability_id: int,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    try:
        return VulnerabilityResponse.model_validate(ScanService(db).get_vulnerability(vulnerability_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("get vulnerability", e)


@router.patch("/{vulnerability_id}", response_model=VulnerabilityResponse)
async def update_vulnerability_status(
    vulnerability_id: int,
    update: VulnerabilityStatusUpdate,
    client: APIClient = Depends(require_role("security_analyst")),
    db: Session = Depends(get_db),
):
    """
    Set the triage status of a vulnerability.

    Any status value is accepted from any other; only the status field is
    writable after the pipeline stored the finding.
    """
    try:
        vuln = ScanService(db).update_vulnerability_status(vulnerability_id, update.status)
        return VulnerabilityResponse.model_validate(vuln)
    except HTTPException:
        raise
    except ValueError as e:
        db.rollback()
        raise domain_error(e)
    except Exception as e:
        db.rollback()
        raise internal_error("update vulnerability status", e)
