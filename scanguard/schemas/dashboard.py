"""Schemas for the dashboard overview and CVE lookups."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from scanguard.schemas.scan import ScanResponse
from scanguard.schemas.vulnerability import VulnerabilityResponse


class DashboardSummaryResponse(BaseModel):
    """Fleet-wide overview across all scans."""
    total_scans: int
    active_scans: int
    complete_scans: int
    failed_scans: int
    critical_open_vulnerabilities: int
    severity_breakdown: Dict[str, int]
    average_risk_score: Optional[float] = None
    average_compliance_rate: Optional[float] = None
    recent_scans: List[ScanResponse]
    top_vulnerabilities: List[VulnerabilityResponse]


class CveResponse(BaseModel):
    """CVE details from the NVD cache."""
    cve_id: str
    description: Optional[str] = None
    cvss_score: Optional[float] = None
    severity: Optional[str] = None
    cwe_ids: List[str] = []
    published_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None
    reference_links: List[str] = []
    affected_products: List[str] = []
    fetched_at: datetime

    model_config = {"from_attributes": True}
