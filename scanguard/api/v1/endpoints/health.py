"""
Health check endpoint for monitoring and diagnostics.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scanguard.core.database import get_db
from scanguard.core.config import settings
from scanguard.services.analyzers import get_analyzer
from scanguard.services.change_feed import change_feed

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint that verifies:
    - API is running
    - Database connection works (SELECT 1)

    Returns:
        {
            "ok": true,
            "db": true,
            "environment": "development",
            "analysis_mode": "mock",
            "event_subscribers": 0
        }
    """
    db_ok = False

    try:
        db.execute(text("SELECT 1")).fetchone()
        db_ok = True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error during health check: {e}", exc_info=True)

    # If DB is down, return 503 Service Unavailable
    if not db_ok:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed"
        )

    try:
        analysis_mode = get_analyzer().name
    except Exception as e:
        logger.warning(f"Analyzer misconfigured: {e}")
        analysis_mode = "unavailable"

    return {
        "ok": True,
        "db": True,
        "environment": settings.APP_ENV,
        "analysis_mode": analysis_mode,
        "event_subscribers": change_feed.subscriber_count,
    }
