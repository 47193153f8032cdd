"""
Role definitions for API key RBAC.

Roles in hierarchy (lowest to highest):
- viewer: Read scans, findings, reports and the change feed
- operator: Create scans, upload firmware, start analysis
- security_analyst: Triage vulnerabilities (status updates)
- admin: Delete scans and run maintenance
"""
from enum import Enum
from typing import Dict, Set


class Role(str, Enum):
    """API client roles with hierarchy."""
    VIEWER = "viewer"
    OPERATOR = "operator"
    SECURITY_ANALYST = "security_analyst"
    ADMIN = "admin"


ROLE_HIERARCHY: Dict[str, int] = {
    Role.VIEWER.value: 1,
    Role.OPERATOR.value: 2,
    Role.SECURITY_ANALYST.value: 3,
    Role.ADMIN.value: 4,
}

# Short aliases accepted in API_KEYS
ROLE_ALIASES: Dict[str, str] = {
    "read_only": Role.VIEWER.value,
    "analyst": Role.SECURITY_ANALYST.value,
}

VALID_ROLES: Set[str] = {r.value for r in Role}


def normalize_role(role: str) -> str:
    """
    Normalize role string, resolving aliases.

    Unknown roles fall back to viewer.
    """
    role_lower = (role or "").lower().strip()

    if role_lower in ROLE_ALIASES:
        return ROLE_ALIASES[role_lower]

    if role_lower in VALID_ROLES:
        return role_lower

    return Role.VIEWER.value


def has_permission(user_role: str, required_role: str) -> bool:
    """Check if user role is at least the required role."""
    user_level = ROLE_HIERARCHY.get(normalize_role(user_role), 0)
    required_level = ROLE_HIERARCHY.get(normalize_role(required_role), 0)
    return user_level >= required_level
