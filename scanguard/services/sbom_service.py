"""
SBOM helpers: derived risk and license status, and SPDX / CycloneDX export.
"""
import re
import uuid
from typing import Any, Dict, Iterable, List, Optional

from scanguard.models.sbom_component import SbomComponent
from scanguard.models.scan import Scan
from scanguard.schemas.sbom import SbomComponentResponse
from scanguard.utils.timezone import get_now

TOOL_NAME = "ECU-ScanGuard"
TOOL_VERSION = "1.0"

COMPLIANT_LICENSES = ("MIT", "Apache-2.0", "BSD-3-Clause", "BSD-2-Clause", "ISC")
VIOLATION_LICENSES = ("GPL-3.0", "AGPL-3.0", "GPL-2.0")

EXPORT_FORMATS = ("spdx", "cyclonedx")


def risk_level(vulnerability_count: int) -> str:
    """0 known CVEs -> low, 1 -> medium, 2 -> high, 3+ -> critical."""
    if vulnerability_count >= 3:
        return "critical"
    if vulnerability_count == 2:
        return "high"
    if vulnerability_count == 1:
        return "medium"
    return "low"


def license_status(license_name: Optional[str]) -> str:
    """Classify a license string; unknown or missing licenses need review."""
    if not license_name:
        return "review"
    text = license_name.lower()
    if any(l.lower() in text for l in COMPLIANT_LICENSES):
        return "compliant"
    if any(l.lower() in text for l in VIOLATION_LICENSES):
        return "violation"
    return "review"


def to_response(component: SbomComponent) -> SbomComponentResponse:
    vulns = list(component.vulnerabilities or [])
    return SbomComponentResponse(
        id=component.id,
        scan_id=component.scan_id,
        component_name=component.component_name,
        version=component.version,
        license=component.license,
        source_file=component.source_file,
        vulnerabilities=vulns,
        risk_level=risk_level(len(vulns)),
        license_status=license_status(component.license),
        created_at=component.created_at,
    )


def license_summary(components: Iterable[SbomComponent]) -> Dict[str, int]:
    summary = {"compliant": 0, "violation": 0, "review": 0}
    for component in components:
        summary[license_status(component.license)] += 1
    return summary


def _spdx_id(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9.\-]+", "-", value).strip("-") or "component"


def _timestamp() -> str:
    return get_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def build_spdx(scan: Scan, components: List[SbomComponent]) -> Dict[str, Any]:
    """SPDX 2.3 JSON document for the scan's components."""
    packages = []
    relationships = []
    for component in components:
        spdx_id = f"SPDXRef-Package-{component.id}-{_spdx_id(component.component_name)}"
        package = {
            "SPDXID": spdx_id,
            "name": component.component_name,
            "versionInfo": component.version or "NOASSERTION",
            "downloadLocation": "NOASSERTION",
            "filesAnalyzed": False,
            "licenseConcluded": component.license or "NOASSERTION",
            "licenseDeclared": component.license or "NOASSERTION",
            "copyrightText": "NOASSERTION",
        }
        if component.source_file:
            package["sourceInfo"] = f"Detected in {component.source_file}"
        if component.vulnerabilities:
            package["externalRefs"] = [
                {
                    "referenceCategory": "SECURITY",
                    "referenceType": "advisory",
                    "referenceLocator": f"https://nvd.nist.gov/vuln/detail/{cve}",
                }
                for cve in component.vulnerabilities
            ]
        packages.append(package)
        relationships.append({
            "spdxElementId": "SPDXRef-DOCUMENT",
            "relationshipType": "DESCRIBES",
            "relatedSpdxElement": spdx_id,
        })

    name = f"{scan.ecu_name}-{scan.version or 'unknown'}"
    return {
        "spdxVersion": "SPDX-2.3",
        "dataLicense": "CC0-1.0",
        "SPDXID": "SPDXRef-DOCUMENT",
        "name": name,
        "documentNamespace": f"https://scanguard.local/spdx/{_spdx_id(name)}-{scan.id}",
        "creationInfo": {
            "created": _timestamp(),
            "creators": [f"Tool: {TOOL_NAME}-{TOOL_VERSION}"],
        },
        "packages": packages,
        "relationships": relationships,
    }


def build_cyclonedx(scan: Scan, components: List[SbomComponent]) -> Dict[str, Any]:
    """CycloneDX 1.5 JSON document for the scan's components."""
    bom_components = []
    vulnerabilities = []
    for component in components:
        ref = f"{_spdx_id(component.component_name)}@{component.version or 'unknown'}#{component.id}"
        entry = {
            "type": "library",
            "bom-ref": ref,
            "name": component.component_name,
            "version": component.version or "unknown",
        }
        if component.license:
            entry["licenses"] = [{"license": {"name": component.license}}]
        bom_components.append(entry)
        for cve in component.vulnerabilities or []:
            vulnerabilities.append({
                "id": cve,
                "source": {"name": "NVD", "url": f"https://nvd.nist.gov/vuln/detail/{cve}"},
                "affects": [{"ref": ref}],
            })

    document = {
        "bomFormat": "CycloneDX",
        "specVersion": "1.5",
        "serialNumber": f"urn:uuid:{uuid.uuid4()}",
        "version": 1,
        "metadata": {
            "timestamp": _timestamp(),
            "tools": [{"vendor": "ScanGuard", "name": TOOL_NAME, "version": TOOL_VERSION}],
            "component": {
                "type": "firmware",
                "name": scan.ecu_name,
                "version": scan.version or "unknown",
            },
        },
        "components": bom_components,
    }
    if vulnerabilities:
        document["vulnerabilities"] = vulnerabilities
    return document


def export_sbom(scan: Scan, components: List[SbomComponent], fmt: str) -> Dict[str, Any]:
    fmt = (fmt or "").lower()
    if fmt == "spdx":
        return build_spdx(scan, components)
    if fmt == "cyclonedx":
        return build_cyclonedx(scan, components)
    raise ValueError(f"Unsupported SBOM format '{fmt}'. Use one of: {', '.join(EXPORT_FORMATS)}")


def export_filename(scan: Scan, fmt: str) -> str:
    suffix = "spdx.json" if fmt == "spdx" else "cdx.json"
    return f"{_spdx_id(scan.ecu_name)}-sbom.{suffix}"
