"""
Risk scoring helpers.

The weights are policy, not science: critical findings dominate and the
score is capped at 100.
"""
from typing import Dict, Iterable, List, Optional

from scanguard.models.vulnerability import Severity

CRITICAL_WEIGHT = 25
HIGH_WEIGHT = 15
DEFAULT_BASE_OFFSET = 20

# TARA CIA deductions per finding: (critical, high, medium)
CIA_DEDUCTIONS = {
    "confidentiality": (20, 10, 3),
    "integrity": (25, 12, 4),
    "availability": (15, 8, 2),
}

ATTACK_PATH_CWES = {"CWE-78", "CWE-120"}
REMOTE_VECTOR_KEYWORDS = ("network", "remote")


def clamp_risk_score(value) -> int:
    """Coerce any numeric-ish score into an int within [0, 100]."""
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        raise ValueError(f"Risk score must be numeric, got {value!r}")
    return max(0, min(100, score))


def calculate_risk_score(critical: int, high: int, base_offset: int = DEFAULT_BASE_OFFSET) -> int:
    """
    Aggregate severity counts into a 0-100 risk score.

    risk = min(100, 25 * critical + 15 * high + base_offset)
    """
    raw = CRITICAL_WEIGHT * max(0, critical) + HIGH_WEIGHT * max(0, high) + base_offset
    return clamp_risk_score(raw)


def _severity_of(item) -> Optional[str]:
    severity = item.get("severity") if isinstance(item, dict) else getattr(item, "severity", None)
    if severity is None:
        return None
    return severity.value if isinstance(severity, Severity) else str(severity).lower()


def severity_breakdown(vulnerabilities: Iterable) -> Dict[str, int]:
    """Count findings per severity. Accepts ORM rows, schemas or dicts."""
    breakdown = {s.value: 0 for s in Severity}
    for vuln in vulnerabilities:
        severity = _severity_of(vuln)
        if severity in breakdown:
            breakdown[severity] += 1
    return breakdown


def risk_score_for(vulnerabilities: Iterable, base_offset: int = DEFAULT_BASE_OFFSET) -> int:
    breakdown = severity_breakdown(vulnerabilities)
    return calculate_risk_score(breakdown["critical"], breakdown["high"], base_offset)


def risk_band(risk_score: Optional[int]) -> str:
    """Map a score to the dashboard's band: >70 high, >40 medium, else low."""
    if risk_score is None:
        return "unknown"
    if risk_score > 70:
        return "high"
    if risk_score > 40:
        return "medium"
    return "low"


def cia_scores(breakdown: Dict[str, int]) -> Dict[str, int]:
    """Confidentiality/integrity/availability health (100 = untouched) for a TARA view."""
    critical = breakdown.get("critical", 0)
    high = breakdown.get("high", 0)
    medium = breakdown.get("medium", 0)
    return {
        name: max(0, 100 - c * critical - h * high - m * medium)
        for name, (c, h, m) in CIA_DEDUCTIONS.items()
    }


def is_attack_path(vuln) -> bool:
    """Findings an attacker could chain from outside: critical, remote-reachable, or injection/overflow CWEs."""
    if _severity_of(vuln) == Severity.CRITICAL.value:
        return True
    attack_vector = (getattr(vuln, "attack_vector", None) or "").lower()
    if any(keyword in attack_vector for keyword in REMOTE_VECTOR_KEYWORDS):
        return True
    return (getattr(vuln, "cwe_id", None) or "").upper() in ATTACK_PATH_CWES


def attack_paths(vulnerabilities: Iterable) -> List:
    return [v for v in vulnerabilities if is_attack_path(v)]
