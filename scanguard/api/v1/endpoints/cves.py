"""
CVE detail lookups (NVD, cached).
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from scanguard.api.v1.errors import domain_error, internal_error
from scanguard.core.auth import APIClient, require_role
from scanguard.core.database import get_db
from scanguard.core.exceptions import CveLookupError
from scanguard.schemas.dashboard import CveResponse
from scanguard.services.cve_service import CveService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{cve_id}", response_model=CveResponse)
async def get_cve(
    cve_id: str,
    refresh: bool = Query(False, description="Bypass the cache and query NVD"),
    client: APIClient = Depends(require_role("viewer")),
    db: Session = Depends(get_db),
):
    try:
        return CveResponse.model_validate(CveService(db).get_cve(cve_id, refresh=refresh))
    except HTTPException:
        raise
    except CveLookupError as e:
        logger.error(f"CVE lookup failed for {cve_id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except ValueError as e:
        raise domain_error(e)
    except Exception as e:
        db.rollback()
        raise internal_error("look up CVE", e)
