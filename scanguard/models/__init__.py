"""Database models."""
from scanguard.models.scan import Scan, ScanStatus, EcuType, Architecture
from scanguard.models.vulnerability import Vulnerability, Severity, VulnerabilityStatus
from scanguard.models.compliance_result import ComplianceResult, ComplianceStatus
from scanguard.models.sbom_component import SbomComponent
from scanguard.models.analysis_log import AnalysisLog, LogLevel
from scanguard.models.cve_cache import CveCache

__all__ = [
    "Scan",
    "ScanStatus",
    "EcuType",
    "Architecture",
    "Vulnerability",
    "Severity",
    "VulnerabilityStatus",
    "ComplianceResult",
    "ComplianceStatus",
    "SbomComponent",
    "AnalysisLog",
    "LogLevel",
    "CveCache",
]
