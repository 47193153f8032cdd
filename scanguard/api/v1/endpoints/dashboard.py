"""
Dashboard overview and maintenance endpoints.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from scanguard.api.v1.errors import internal_error
from scanguard.core.auth import APIClient, require_role
from scanguard.core.config import settings
from scanguard.core.database import get_db
from scanguard.schemas.dashboard import DashboardSummaryResponse
from scanguard.schemas.scan import StaleScanSweepResponse
from scanguard.services.dashboard_service import dashboard_summary
from scanguard.services.scan_service import ScanService

logger = logging.getLogger(__name__)

router = APIRouter()
maintenance_router = APIRouter()


@router.get("/summary", response_model=DashboardSummaryResponse)
async def get_dashboard_summary(
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """Totals, severity breakdown, averages, recent scans and top open findings."""
    try:
        return dashboard_summary(db)
    except HTTPException:
        raise
    except Exception as e:
        raise internal_error("build dashboard summary", e)


@maintenance_router.post("/stale-scans", response_model=StaleScanSweepResponse)
async def fail_stale_scans(
    timeout_minutes: Optional[int] = Query(None, ge=1, description="Override STALE_SCAN_TIMEOUT_MINUTES"),
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Mark scans that stopped making progress as failed."""
    try:
        timeout = timeout_minutes or settings.STALE_SCAN_TIMEOUT_MINUTES
        failed = ScanService(db).fail_stale_scans(timeout)
        return StaleScanSweepResponse(failed_scan_ids=failed, timeout_minutes=timeout)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        raise internal_error("fail stale scans", e)
