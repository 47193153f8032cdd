"""Schemas for derived assessments: TARA view and version comparison."""
from typing import Dict, List, Optional

from pydantic import BaseModel

from scanguard.schemas.scan import ScanResponse
from scanguard.schemas.vulnerability import VulnerabilityResponse


class CiaScores(BaseModel):
    """Health of each security property, 100 meaning no impacting findings."""
    confidentiality: int
    integrity: int
    availability: int


class TaraResponse(BaseModel):
    """Threat analysis and risk assessment view of a scan."""
    scan_id: str
    ecu_name: str
    ecu_type: str
    risk_score: Optional[int] = None
    risk_band: str
    severity_breakdown: Dict[str, int]
    cia: CiaScores
    attack_paths: List[VulnerabilityResponse]
    total_threats: int


class BaselineListResponse(BaseModel):
    """Earlier complete scans of the same ECU that a scan can be compared with."""
    scan_id: str
    ecu_name: str
    baselines: List[ScanResponse]


class ComparisonResponse(BaseModel):
    """Differences between a scan and a baseline scan of the same ECU."""
    scan_id: str
    baseline_id: str
    current_version: Optional[str] = None
    baseline_version: Optional[str] = None
    new_vulnerabilities: List[VulnerabilityResponse]
    fixed_vulnerabilities: List[VulnerabilityResponse]
    persisting_vulnerabilities: List[VulnerabilityResponse]
    current_risk_score: Optional[int] = None
    baseline_risk_score: Optional[int] = None
    risk_delta: Optional[int] = None
