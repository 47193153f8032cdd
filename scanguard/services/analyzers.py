"""
Analysis engines behind the pipeline executor.

The real decompiler/SAST/CVE engine lives outside this service. Two
stand-ins share one interface: a mock that returns canned automotive
findings, and an LLM analyzer that delegates to the gateway.
"""
import logging
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from scanguard.core.config import settings
from scanguard.core.exceptions import AnalyzerError
from scanguard.models.scan import Scan
from scanguard.models.vulnerability import Severity
from scanguard.schemas.analysis import AnalysisResult, PiiFinding, SecretFinding
from scanguard.schemas.compliance import ComplianceResultCreate
from scanguard.schemas.sbom import SbomComponentCreate
from scanguard.schemas.vulnerability import VulnerabilityCreate, VulnerabilityEnrichment
from scanguard.services.ai_service import AIService, ai_service

logger = logging.getLogger(__name__)

DEFAULT_LLM_RISK_SCORE = 50

CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


@dataclass
class SourceContext:
    """What the parsing stage learned about the artefact under analysis."""
    kind: str  # "binary" or "repository"
    file_name: str
    preview: str
    is_text: bool
    size: int
    sha256: Optional[str] = None
    files: List[str] = field(default_factory=list)


def scan_metadata_for_prompt(scan: Scan) -> Dict[str, Any]:
    return {
        "ecu_name": scan.ecu_name,
        "ecu_type": scan.ecu_type.value,
        "version": scan.version,
        "manufacturer": scan.manufacturer,
        "architecture": scan.architecture.value,
        "file_name": scan.file_name,
        "compliance_frameworks": scan.compliance_frameworks or [],
    }


class Analyzer(ABC):
    """Interface every analysis engine implements."""
    name = "base"
    supports_enrichment = False

    @abstractmethod
    def analyze(self, scan: Scan, context: SourceContext) -> AnalysisResult:
        """Run the engine over a parsed source and return its raw findings."""
        pass

    def enrich(self, vuln: VulnerabilityCreate) -> Optional[VulnerabilityEnrichment]:
        return None


# ---------------------------------------------------------------------------
# Mock engine
# ---------------------------------------------------------------------------

BINARY_FINDINGS = [
    {
        "title": "Buffer Overflow in CAN Message Handler",
        "description": "Stack-based buffer overflow in the CAN message processing routine. A crafted CAN frame can overwrite the return address and execute arbitrary code.",
        "severity": "critical",
        "cwe_id": "CWE-119",
        "cvss_score": 9.8,
        "affected_component": "can_handler.c",
        "line_number": 142,
        "attack_vector": "Adjacent network (CAN bus)",
        "remediation": "Use bounded copy functions and validate the DLC before copying the payload.",
    },
    {
        "title": "Hardcoded API Key Detected",
        "description": "An API key for an external telematics service is embedded in the firmware image.",
        "severity": "high",
        "cwe_id": "CWE-798",
        "cvss_score": 7.5,
        "affected_component": "config.h",
        "line_number": 23,
        "remediation": "Move keys to secure storage (HSM/TPM) or provision them per vehicle at end of line.",
    },
    {
        "title": "Integer Overflow in Sensor Data Processing",
        "description": "Sensor readings are summed in a 16-bit accumulator that wraps on long sampling windows, corrupting derived values.",
        "severity": "medium",
        "cwe_id": "CWE-190",
        "cvss_score": 5.3,
        "affected_component": "sensor_proc.c",
        "line_number": 87,
        "remediation": "Check bounds before arithmetic and widen the accumulator.",
    },
    {
        "title": "Debug Interface Enabled in Production",
        "description": "The JTAG debug interface is left enabled in the boot configuration, allowing physical access attacks.",
        "severity": "high",
        "cwe_id": "CWE-489",
        "cvss_score": 6.8,
        "affected_component": "boot_config.bin",
        "line_number": None,
        "attack_vector": "Physical",
        "remediation": "Disable or lock debug interfaces in production builds.",
    },
    {
        "title": "Weak Random Number Generator",
        "description": "Seed/key challenge values come from a linear congruential generator that is not cryptographically secure.",
        "severity": "medium",
        "cwe_id": "CWE-338",
        "cvss_score": 5.9,
        "affected_component": "crypto_utils.c",
        "line_number": 56,
        "remediation": "Use the hardware TRNG or a vetted CSPRNG.",
    },
]

REPOSITORY_FINDINGS = [
    {
        "title": "Potential Command Injection",
        "description": "User-controlled input reaches system() without sanitization.",
        "severity": "critical",
        "cwe_id": "CWE-78",
        "cvss_score": 9.1,
        "affected_component": "src/controls.c",
        "line_number": 234,
        "attack_vector": "Local input, remote when exposed over the network",
        "remediation": "Avoid the shell; pass arguments to exec-style APIs and validate input against an allow-list.",
    },
    {
        "title": "Insecure CAN Message Handling",
        "description": "CAN messages are processed without authentication or freshness checks.",
        "severity": "high",
        "cwe_id": "CWE-306",
        "cvss_score": 7.8,
        "affected_component": "src/can_interface.c",
        "line_number": 89,
        "attack_vector": "Adjacent network (CAN bus)",
        "remediation": "Authenticate safety-relevant frames (AUTOSAR SecOC) and reject stale counters.",
    },
    {
        "title": "Memory Leak in Socket Handler",
        "description": "Socket buffers are not released when a connection closes, exhausting memory over time.",
        "severity": "medium",
        "cwe_id": "CWE-401",
        "cvss_score": 5.3,
        "affected_component": "src/icsim.c",
        "line_number": 156,
        "remediation": "Free all per-connection resources on close and on error paths.",
    },
]

MOCK_COMPLIANCE = [
    {
        "framework": "ISO 21434",
        "rule_id": "CAL-1",
        "rule_description": "Risk Assessment - Cybersecurity Engineering",
        "status": "pass",
        "details": "Threat analysis documentation found and valid.",
    },
    {
        "framework": "MISRA C",
        "rule_id": "Rule-11.5",
        "rule_description": "No cast from pointer to void to pointer to object",
        "status": "fail",
        "details": "Found 3 violations in sensor_proc.c",
    },
    {
        "framework": "ISO 21434",
        "rule_id": "SEC-2",
        "rule_description": "Secure Coding Standards",
        "status": "warning",
        "details": "Some coding standards violations detected.",
    },
]

BINARY_SBOM = [
    {"component_name": "FreeRTOS", "version": "10.5.1", "license": "MIT"},
    {"component_name": "lwIP", "version": "2.1.3", "license": "BSD-3-Clause"},
    {"component_name": "mbed TLS", "version": "3.4.0", "license": "Apache-2.0"},
    {"component_name": "CAN driver", "version": "2.0.0", "license": "Proprietary"},
    {"component_name": "STM32 HAL", "version": "1.8.0", "license": "BSD-3-Clause"},
]

REPOSITORY_SBOM = [
    {"component_name": "SDL2", "version": "2.0.20", "license": "Zlib"},
    {"component_name": "can-utils", "version": "2021.08.0", "license": "GPL-2.0"},
    {"component_name": "vcan", "version": "kernel", "license": "GPL-2.0"},
]


class MockAnalyzer(Analyzer):
    """
    Canned findings for demos, development and tests.

    Binary sources get the first 2-4 findings (all five on deep analysis);
    repository sources always get the three repository findings.
    """
    name = "mock"

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def analyze(self, scan: Scan, context: SourceContext) -> AnalysisResult:
        if context.kind == "repository":
            findings = REPOSITORY_FINDINGS
            sbom = REPOSITORY_SBOM
        else:
            count = len(BINARY_FINDINGS) if scan.deep_analysis else self._random.randint(2, 4)
            findings = BINARY_FINDINGS[:count]
            sbom = BINARY_SBOM

        return AnalysisResult(
            vulnerabilities=[VulnerabilityCreate(detection_method="mock", **f) for f in findings],
            compliance_results=[ComplianceResultCreate(**c) for c in MOCK_COMPLIANCE],
            sbom_components=[SbomComponentCreate(**c) for c in sbom],
        )


# ---------------------------------------------------------------------------
# LLM engine
# ---------------------------------------------------------------------------

def _pick(raw: Dict[str, Any], *keys, default=None):
    for key in keys:
        value = raw.get(key)
        if value not in (None, "", []):
            return value
    return default


def _coerce_severity(value, default: Severity) -> str:
    text = str(value or "").strip().lower()
    if text in {s.value for s in Severity}:
        return text
    return default.value


def _coerce_float(value) -> Optional[float]:
    try:
        return max(0.0, min(10.0, float(value)))
    except (TypeError, ValueError):
        return None


def _coerce_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _validated(model, items: Iterable, label: str) -> List:
    """Validate items one by one; a malformed entry is dropped rather than sinking the whole scan."""
    valid = []
    for item in items or []:
        if not isinstance(item, dict):
            logger.warning(f"Dropping non-object {label} entry from LLM response: {item!r}")
            continue
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Dropping invalid {label} entry from LLM response: {e.errors()[:2]}")
    return valid


def _snake_keys(item: Dict[str, Any]) -> Dict[str, Any]:
    """cweId -> cwe_id; snake_case keys win when the model sends both."""
    converted = {}
    for key, value in item.items():
        snake = CAMEL_RE.sub("_", key).lower() if isinstance(key, str) else key
        if snake not in converted or key == snake:
            converted[snake] = value
    return converted


def _normalize_vulnerability(item: Dict[str, Any]) -> Dict[str, Any]:
    item = _snake_keys(item)
    item["severity"] = _coerce_severity(item.get("severity"), Severity.MEDIUM)
    item["cvss_score"] = _coerce_float(item.get("cvss_score"))
    line = _coerce_int(item.get("line_number"))
    item["line_number"] = line if line is not None and line >= 0 else None
    item.setdefault("detection_method", "llm")
    return item


def _normalize_compliance(item: Dict[str, Any]) -> Dict[str, Any]:
    item = _snake_keys(item)
    item["status"] = str(item.get("status") or "").strip().lower()
    return item


def _normalize_finding(item: Dict[str, Any], default: Severity) -> Dict[str, Any]:
    item = _snake_keys(item)
    item["severity"] = _coerce_severity(item.get("severity"), default)
    for key in ("type", "value", "location", "context", "remediation"):
        if item.get(key) is not None and not isinstance(item[key], str):
            item[key] = str(item[key])
    return item


def _normalize_sbom(item: Dict[str, Any]) -> Dict[str, Any]:
    item = _snake_keys(item)
    item["component_name"] = _pick(item, "component_name", "componentName", "name", default="")
    vulns = item.get("vulnerabilities") or []
    if isinstance(vulns, str):
        vulns = [vulns]
    item["vulnerabilities"] = [v if isinstance(v, str) else str(v.get("id", v)) if isinstance(v, dict) else str(v)
                               for v in vulns]
    return item


def normalize_llm_result(raw: Dict[str, Any]) -> AnalysisResult:
    """Map a model reply (camelCase or snake_case keys) onto AnalysisResult."""
    vulnerabilities = [_normalize_vulnerability(v) for v in _pick(raw, "vulnerabilities", default=[]) if isinstance(v, dict)]
    compliance = [_normalize_compliance(c) for c in _pick(raw, "compliance_results", "complianceResults", default=[]) if isinstance(c, dict)]
    sbom = [_normalize_sbom(c) for c in _pick(raw, "sbom_components", "sbomComponents", default=[]) if isinstance(c, dict)]
    pii = [_normalize_finding(p, Severity.MEDIUM) for p in _pick(raw, "pii_findings", "piiFindings", default=[]) if isinstance(p, dict)]
    secrets = [_normalize_finding(s, Severity.CRITICAL) for s in _pick(raw, "secret_findings", "secretFindings", default=[]) if isinstance(s, dict)]

    risk = _pick(raw, "risk_score", "riskScore")
    risk_score = _coerce_int(risk)
    if risk_score is None:
        risk_score = DEFAULT_LLM_RISK_SCORE

    return AnalysisResult(
        vulnerabilities=_validated(VulnerabilityCreate, vulnerabilities, "vulnerability"),
        compliance_results=_validated(ComplianceResultCreate, compliance, "compliance"),
        sbom_components=_validated(SbomComponentCreate, sbom, "sbom"),
        pii_findings=_validated(PiiFinding, pii, "pii"),
        secret_findings=_validated(SecretFinding, secrets, "secret"),
        executive_summary=_pick(raw, "executive_summary", "executiveSummary"),
        risk_score=risk_score,
    )


class LlmAnalyzer(Analyzer):
    """Delegates analysis and enrichment to the LLM gateway."""
    name = "llm"
    supports_enrichment = True

    def __init__(self, service: Optional[AIService] = None):
        self.service = service or ai_service

    def analyze(self, scan: Scan, context: SourceContext) -> AnalysisResult:
        raw = self.service.analyze_firmware(scan_metadata_for_prompt(scan), context.preview, context.is_text)
        result = normalize_llm_result(raw)
        logger.info(
            f"LLM analysis for scan {scan.id} returned {len(result.vulnerabilities)} vulns, "
            f"{len(result.compliance_results)} compliance, {len(result.pii_findings)} PII, "
            f"{len(result.secret_findings)} secrets"
        )
        return result

    def enrich(self, vuln: VulnerabilityCreate) -> Optional[VulnerabilityEnrichment]:
        return self.service.enrich_vulnerability(vuln)


def get_analyzer() -> Analyzer:
    """Pick the engine from ANALYSIS_MODE (auto: LLM when a gateway key is set)."""
    mode = (settings.ANALYSIS_MODE or "auto").strip().lower()
    if mode == "mock":
        return MockAnalyzer(seed=settings.MOCK_ANALYSIS_SEED)
    if mode == "llm":
        if not settings.is_openai_available():
            raise AnalyzerError("ANALYSIS_MODE=llm but OPENAI_API_KEY is not configured")
        return LlmAnalyzer()
    if mode != "auto":
        logger.warning(f"Unknown ANALYSIS_MODE '{mode}', falling back to auto")
    if settings.is_openai_available():
        return LlmAnalyzer()
    return MockAnalyzer(seed=settings.MOCK_ANALYSIS_SEED)
