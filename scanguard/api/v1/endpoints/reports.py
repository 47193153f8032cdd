"""
Scan report download endpoint.
"""
import io
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.orm import Session

from scanguard.api.v1.errors import domain_error, internal_error
from scanguard.core.auth import APIClient, require_role
from scanguard.core.database import get_db
from scanguard.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{scan_id}")
async def get_scan_report(
    scan_id: str,
    format: str = Query("json", description="Report format: json, markdown or pdf"),
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    """
    Render a security report for a scan.

    Reports can be generated for scans in any state; a scan that has not
    completed simply has no risk score or summary yet.
    """
    try:
        content, media_type, filename = ReportService(db).render(scan_id, format)
        headers = {"Content-Disposition": f'attachment; filename="{filename}"'}

        if media_type == "application/pdf":
            return StreamingResponse(io.BytesIO(content), media_type=media_type, headers=headers)
        if media_type == "application/json":
            return JSONResponse(content=content, headers=headers)
        return Response(content=content, media_type=media_type, headers=headers)
    except HTTPException:
        raise
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        raise internal_error("generate report", e)
