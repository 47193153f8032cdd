"""
API key authentication and RBAC for protected endpoints.
"""
import hmac
import logging
from typing import Optional

from fastapi import HTTPException, status, Security, Depends
from fastapi.security import APIKeyHeader

from scanguard.core.config import settings
from scanguard.core.roles import Role, normalize_role, has_permission

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class APIClient:
    """Simple object representing an authenticated API client."""
    def __init__(self, source: str, role: str, key_hint: Optional[str] = None):
        self.source = source  # "anonymous", "static" or "keyring"
        self.role = normalize_role(role)
        self.key_hint = key_hint


def _matches(candidate: str, expected: str) -> bool:
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def get_current_api_client(
    api_key: Optional[str] = Security(api_key_header),
) -> APIClient:
    """
    Dependency to verify the X-API-Key header and return the API client.

    Keys come from two settings:
    1. API_KEY, the admin key
    2. API_KEYS, extra keys mapped to roles

    When neither is configured, authentication is disabled and every
    caller is treated as admin (local development and tests).

    Raises:
        HTTPException: If API key is missing or invalid
    """
    if not settings.is_auth_enabled():
        logger.debug("No API keys configured - authentication is disabled")
        return APIClient(source="anonymous", role=Role.ADMIN.value)

    if not api_key:
        logger.warning("API key missing from request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if settings.API_KEY and _matches(api_key, settings.API_KEY):
        logger.debug("Authenticated with admin API key")
        return APIClient(source="static", role=Role.ADMIN.value, key_hint=api_key[:4])

    for key, role in (settings.API_KEYS or {}).items():
        if _matches(api_key, key):
            normalized_role = normalize_role(role)
            logger.debug(f"Authenticated with keyring API key {key[:4]}... (role: {normalized_role})")
            return APIClient(source="keyring", role=normalized_role, key_hint=key[:4])

    logger.warning(f"Invalid API key attempted: {api_key[:4]}...")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid API key",
        headers={"WWW-Authenticate": "ApiKey"},
    )


def require_role(min_role: str = "viewer"):
    """
    Dependency factory for role-based access control.

    Args:
        min_role: Minimum required role (viewer, operator, security_analyst, admin)

    Returns:
        Dependency function that checks role permissions
    """
    def check_role(client: APIClient = Depends(get_current_api_client)) -> APIClient:
        if not has_permission(client.role, min_role):
            normalized_min = normalize_role(min_role)
            logger.warning(
                f"Access denied: client role '{client.role}' does not meet minimum requirement '{normalized_min}'"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {normalized_min}",
            )
        return client

    return check_role
