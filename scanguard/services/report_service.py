"""
Scan reports in JSON, Markdown and PDF.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from scanguard.models.vulnerability import SEVERITY_ORDER
from scanguard.schemas.compliance import ComplianceResultResponse
from scanguard.schemas.scan import ScanResponse
from scanguard.schemas.vulnerability import VulnerabilityResponse
from scanguard.services import sbom_service
from scanguard.services.compliance import framework_summary, pass_rate
from scanguard.services.risk import risk_band, severity_breakdown
from scanguard.services.scan_service import ScanService
from scanguard.utils.pdf_generator import generate_scan_report_pdf
from scanguard.utils.timezone import get_now

logger = logging.getLogger(__name__)

REPORT_FORMATS = ("json", "markdown", "pdf")


class ReportService:
    """Service for rendering scan reports."""

    def __init__(self, db: Session):
        self.scans = ScanService(db)

    def build_report(self, scan_id: str) -> Dict[str, Any]:
        """Structured report document; the Markdown and PDF renderings are built from it."""
        scan = self.scans.get_scan(scan_id)
        vulns, _ = self.scans.list_vulnerabilities(scan_id=scan_id)
        compliance = self.scans.list_compliance_results(scan_id)
        components = self.scans.list_sbom_components(scan_id)

        ordered = sorted(vulns, key=lambda v: (SEVERITY_ORDER[v.severity], -(v.cvss_score or 0), v.id))
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for vuln in ordered:
            grouped.setdefault(vuln.severity.value, []).append(
                VulnerabilityResponse.model_validate(vuln).model_dump(mode="json")
            )

        return {
            "report_type": "ecu_security_assessment",
            "generated_at": get_now().isoformat(),
            "scan": ScanResponse.model_validate(scan).model_dump(mode="json"),
            "risk": {"score": scan.risk_score, "band": risk_band(scan.risk_score)},
            "executive_summary": scan.executive_summary,
            "severity_breakdown": severity_breakdown(vulns),
            "vulnerabilities": grouped,
            "compliance": {
                "overall_pass_rate": pass_rate(compliance),
                "frameworks": framework_summary(compliance),
                "results": [
                    ComplianceResultResponse.model_validate(r).model_dump(mode="json") for r in compliance
                ],
            },
            "sbom": {
                "license_summary": sbom_service.license_summary(components),
                "components": [sbom_service.to_response(c).model_dump(mode="json") for c in components],
            },
        }

    def render_markdown(self, report: Dict[str, Any]) -> str:
        scan = report["scan"]
        risk = report["risk"]
        lines = [
            f"# ECU Security Report: {scan['ecu_name']}",
            "",
            f"- **ECU type:** {scan['ecu_type']}",
            f"- **Version:** {scan.get('version') or 'Unknown'}",
            f"- **Manufacturer:** {scan.get('manufacturer') or 'Unknown'}",
            f"- **Architecture:** {scan['architecture']}",
            f"- **File:** {scan.get('file_name') or 'N/A'}",
            f"- **Status:** {scan['status']} ({scan['progress']}%)",
            f"- **Generated:** {report['generated_at']}",
            "",
            "## Risk",
            "",
            f"**Risk score:** {risk['score'] if risk['score'] is not None else 'N/A'}/100 ({risk['band']})",
            "",
            "## Executive Summary",
            "",
            report.get("executive_summary") or "No summary available.",
            "",
            "## Severity Breakdown",
            "",
            "| Severity | Count |",
            "|---|---|",
        ]
        for level, count in report["severity_breakdown"].items():
            lines.append(f"| {level} | {count} |")

        lines += ["", "## Vulnerabilities", ""]
        if not report["vulnerabilities"]:
            lines.append("No vulnerabilities detected.")
        for level, findings in report["vulnerabilities"].items():
            lines += [f"### {level.title()} ({len(findings)})", ""]
            for finding in findings:
                refs = ", ".join(r for r in (finding.get("cve_id"), finding.get("cwe_id")) if r)
                lines.append(f"#### {finding['title']}" + (f" ({refs})" if refs else ""))
                lines.append("")
                location = finding.get("affected_component") or "N/A"
                if finding.get("line_number") is not None:
                    location += f":{finding['line_number']}"
                lines.append(f"- **CVSS:** {finding.get('cvss_score') if finding.get('cvss_score') is not None else 'N/A'}")
                lines.append(f"- **Location:** {location}")
                lines.append(f"- **Status:** {finding['status']}")
                if finding.get("description"):
                    lines.append(f"- **Description:** {finding['description']}")
                if finding.get("remediation"):
                    lines.append(f"- **Remediation:** {finding['remediation']}")
                lines.append("")

        compliance = report["compliance"]
        lines += [
            "## Compliance",
            "",
            f"Overall pass rate: {compliance['overall_pass_rate']}%",
            "",
            "| Framework | Checks | Pass | Fail | Warning | Pass rate |",
            "|---|---|---|---|---|---|",
        ]
        for fw in compliance["frameworks"]:
            lines.append(
                f"| {fw['name']} | {fw['total']} | {fw['passed']} | {fw['failed']} | {fw['warnings']} | {fw['pass_rate']}% |"
            )

        lines += ["", "## SBOM", ""]
        if not report["sbom"]["components"]:
            lines.append("No SBOM components detected.")
        else:
            lines += ["| Component | Version | License | License status | Known CVEs |", "|---|---|---|---|---|"]
            for c in report["sbom"]["components"]:
                lines.append(
                    f"| {c['component_name']} | {c.get('version') or 'Unknown'} | {c.get('license') or 'Unknown'} "
                    f"| {c['license_status']} | {len(c.get('vulnerabilities') or [])} |"
                )
        lines.append("")
        return "\n".join(lines)

    def render_pdf(self, report: Dict[str, Any]) -> bytes:
        return generate_scan_report_pdf(report)

    def render(self, scan_id: str, fmt: str):
        """Return (content, media_type, filename) for the requested format."""
        fmt = (fmt or "json").lower()
        if fmt not in REPORT_FORMATS:
            raise ValueError(f"Unsupported report format '{fmt}'. Use one of: {', '.join(REPORT_FORMATS)}")

        report = self.build_report(scan_id)
        base_name = f"scan-report-{scan_id}"
        if fmt == "markdown":
            return self.render_markdown(report), "text/markdown; charset=utf-8", f"{base_name}.md"
        if fmt == "pdf":
            pdf = self.render_pdf(report)
            logger.info(f"Generated PDF report for scan {scan_id} ({len(pdf)} bytes)")
            return pdf, "application/pdf", f"{base_name}.pdf"
        return report, "application/json", f"{base_name}.json"
