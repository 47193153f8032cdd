"""
Compliance framework matching and pass-rate math.

Analyzers label results with free-text framework names ("ISO/SAE 21434",
"MISRA C:2012", "UNECE R155"...). These helpers map them onto the
canonical frameworks shown on the dashboard.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from scanguard.models.compliance_result import ComplianceStatus

# key -> (display name, aliases); matched case-insensitively as substrings
FRAMEWORKS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "misra": ("MISRA C:2023", ("MISRA",)),
    "iso26262": ("ISO 26262:2018", ("ISO 26262", "iso26262", "ISO-26262")),
    "iso21434": ("ISO 21434:2021", ("ISO 21434", "iso21434", "ISO-21434", "ISO/SAE 21434")),
    "autosar": ("AUTOSAR R22-11", ("AUTOSAR",)),
    "unece": ("UNECE WP.29 R155", ("UNECE", "WP.29", "R155", "R156")),
}


def match_framework(raw: Optional[str]) -> Optional[str]:
    """Return the canonical framework key for a free-text name, or None."""
    if not raw:
        return None
    haystack = raw.lower()
    for key, (_, aliases) in FRAMEWORKS.items():
        if any(alias.lower() in haystack for alias in aliases):
            return key
    return None


def framework_name(key: str) -> str:
    return FRAMEWORKS[key][0]


def _status_of(result) -> str:
    status = result.get("status") if isinstance(result, dict) else getattr(result, "status", None)
    if isinstance(status, ComplianceStatus):
        return status.value
    return str(status).lower() if status is not None else ""


def pass_rate(results: Iterable) -> int:
    """Percentage of passing results, rounded. No results means 0, not N/A."""
    results = list(results)
    if not results:
        return 0
    passed = sum(1 for r in results if _status_of(r) == ComplianceStatus.PASS.value)
    return int(round(passed / len(results) * 100))


def _framework_of(result) -> Optional[str]:
    return result.get("framework") if isinstance(result, dict) else getattr(result, "framework", None)


def group_by_framework(results: Iterable) -> Tuple[Dict[str, List], List]:
    """Split results per canonical framework; returns (grouped, unmatched)."""
    grouped: Dict[str, List] = {key: [] for key in FRAMEWORKS}
    unmatched = []
    for result in results:
        key = match_framework(_framework_of(result))
        if key is None:
            unmatched.append(result)
        else:
            grouped[key].append(result)
    return grouped, unmatched


def framework_summary(results: Iterable) -> List[Dict]:
    """Per-framework tallies for every canonical framework, including empty ones."""
    grouped, _ = group_by_framework(results)
    summary = []
    for key, items in grouped.items():
        statuses = [_status_of(r) for r in items]
        summary.append({
            "key": key,
            "name": framework_name(key),
            "total": len(items),
            "passed": statuses.count(ComplianceStatus.PASS.value),
            "failed": statuses.count(ComplianceStatus.FAIL.value),
            "warnings": statuses.count(ComplianceStatus.WARNING.value),
            "pass_rate": pass_rate(items),
        })
    return summary


def filter_selected(results: Iterable, selected: Optional[Iterable[str]]) -> List:
    """
    Keep results whose framework matches one of the scan's selected frameworks.

    An empty selection keeps everything. Selections that are not canonical
    fall back to comparing the first word ("MISRA C" selects "MISRA ...").
    """
    results = list(results)
    selected = [s for s in (selected or []) if s and s.strip()]
    if not selected:
        return results

    selected_keys = {match_framework(s) for s in selected} - {None}
    first_words = {s.split(" ")[0].lower() for s in selected if match_framework(s) is None}

    kept = []
    for result in results:
        raw = _framework_of(result) or ""
        key = match_framework(raw)
        if key is not None and key in selected_keys:
            kept.append(result)
        elif any(word and word in raw.lower() for word in first_words):
            kept.append(result)
    return kept
