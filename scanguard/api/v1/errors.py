"""
Shared HTTP error helpers for endpoint modules.
"""
import logging

from fastapi import HTTPException, status

from scanguard.core.config import settings
from scanguard.core.exceptions import (
    CveNotFoundError,
    InvalidTransitionError,
    ScanClosedError,
    ScanNotFoundError,
    VulnerabilityNotFoundError,
)

logger = logging.getLogger(__name__)

NOT_FOUND_ERRORS = (ScanNotFoundError, VulnerabilityNotFoundError, CveNotFoundError)
CONFLICT_ERRORS = (InvalidTransitionError, ScanClosedError)


def domain_error(e: ValueError) -> HTTPException:
    """Map a domain ValueError onto 404, 409 or 400."""
    if isinstance(e, NOT_FOUND_ERRORS):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, CONFLICT_ERRORS):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    logger.warning(f"Validation error: {e}")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def internal_error(action: str, e: Exception) -> HTTPException:
    """Log an unexpected failure and build the 500 response for it."""
    error_type = type(e).__name__
    logger.error(f"Error while trying to {action} (type: {error_type}): {e}", exc_info=True)
    # In debug mode, return more detailed error information
    if settings.DEBUG:
        detail = f"Failed to {action}: {error_type}: {e}"
    else:
        detail = f"Failed to {action}. Check server logs for details."
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
