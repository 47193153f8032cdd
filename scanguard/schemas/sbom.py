"""Schemas for SBOM components."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


RiskLevel = Literal["low", "medium", "high", "critical"]
LicenseStatus = Literal["compliant", "violation", "review"]


class SbomComponentCreate(BaseModel):
    """A component identified by an analyzer."""
    component_name: str = Field(..., min_length=1)
    version: Optional[str] = None
    license: Optional[str] = None
    source_file: Optional[str] = None
    vulnerabilities: List[str] = Field(default_factory=list)


class SbomComponentResponse(BaseModel):
    """Stored component plus derived, non-persisted risk and license status."""
    id: int
    scan_id: str
    component_name: str
    version: Optional[str] = None
    license: Optional[str] = None
    source_file: Optional[str] = None
    vulnerabilities: List[str] = []
    risk_level: RiskLevel
    license_status: LicenseStatus
    created_at: datetime
