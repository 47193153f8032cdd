"""
Scan endpoints: create, list, read, delete and start analysis.
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from scanguard.api.v1.errors import domain_error, internal_error
from scanguard.core.auth import APIClient, require_role
from scanguard.core.database import get_db, get_session_factory
from scanguard.models.scan import EcuType, ScanStatus
from scanguard.schemas.analysis import AnalysisAck, AnalysisRequest
from scanguard.schemas.scan import ScanCreate, ScanListResponse, ScanResponse
from scanguard.services import pipeline
from scanguard.services.analysis_service import run_analysis
from scanguard.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=ScanResponse, status_code=status.HTTP_201_CREATED)
async def create_scan(
    scan_in: ScanCreate,
    client: APIClient = Depends(require_role("operator")),
    db: Session = Depends(get_db),
):
    """Create a scan in queued state; analysis starts with POST /scans/{id}/analyze."""
    try:
        scan = ScanService(db).create_scan(scan_in)
        return ScanResponse.model_validate(scan)
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("create scan", e)


@router.get("", response_model=ScanListResponse)
async def list_scans(
    status_filter: Optional[ScanStatus] = Query(None, alias="status", description="Filter by pipeline status"),
    ecu_type: Optional[EcuType] = Query(None, description="Filter by ECU type"),
    ecu_name: Optional[str] = Query(None, description="Filter by exact ECU name"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """List scans, newest first."""
    try:
        items, total = ScanService(db).list_scans(
            status=status_filter,
            ecu_type=ecu_type,
            ecu_name=ecu_name,
            limit=limit,
            offset=offset,
        )
        return ScanListResponse(
            items=[ScanResponse.model_validate(s) for s in items],
            total=total,
            limit=limit,
            offset=offset,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise internal_error("list scans", e)


@router.get("/{scan_id}", response_model=ScanResponse)
async def get_scan(
    scan_id: str,
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    try:
        return ScanResponse.model_validate(ScanService(db).get_scan(scan_id))
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("get scan", e)


@router.delete("/{scan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_scan(
    scan_id: str,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Delete a scan together with its vulnerabilities, compliance results, SBOM and logs."""
    try:
        ScanService(db).delete_scan(scan_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        db.rollback()
        raise internal_error("delete scan", e)


@router.post("/{scan_id}/analyze", response_model=AnalysisAck, status_code=status.HTTP_202_ACCEPTED)
async def start_analysis(
    scan_id: str,
    request: AnalysisRequest,
    background_tasks: BackgroundTasks,
    client: APIClient = Depends(require_role("operator")),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    Start the analysis pipeline for a queued scan.

    The scan is claimed (queued -> parsing) before the response is sent, so
    a second start request gets 409 instead of a duplicate pipeline run.
    """
    try:
        pipeline.claim_scan(db, scan_id)
        background_tasks.add_task(run_analysis, session_factory, scan_id, request.source, True)
        logger.info(f"Analysis accepted for scan {scan_id} (source: {request.source.kind})")
        return AnalysisAck(
            scan_id=scan_id,
            source_kind=request.source.kind,
            message="Analysis started",
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        db.rollback()
        raise internal_error("start analysis", e)
