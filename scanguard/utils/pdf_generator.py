"""
PDF report generation utilities.
"""
import logging
from io import BytesIO
from datetime import datetime, timezone
from typing import Dict, Any, List
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_JUSTIFY
from reportlab.platypus.flowables import HRFlowable

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = ['critical', 'high', 'medium', 'low', 'info']


def _text(value: Any, default: str = "N/A") -> str:
    """Escape a value for use inside a reportlab Paragraph."""
    if value is None or value == "":
        return default
    return escape(str(value))


class PDFReportBuilder:
    """Builder class for ECU security assessment PDF reports."""

    # Severity colors
    SEVERITY_COLORS = {
        'critical': colors.HexColor('#c0392b'),  # Dark red
        'high': colors.HexColor('#e67e22'),      # Orange
        'medium': colors.HexColor('#f1c40f'),    # Yellow
        'low': colors.HexColor('#3498db'),       # Blue
        'info': colors.HexColor('#7f8c8d'),      # Grey
    }

    def __init__(self, report: Dict[str, Any]):
        """
        Initialize PDF report builder.

        Args:
            report: Structured report document from ReportService.build_report
        """
        self.report = report
        self.buffer = BytesIO()
        self.story = []
        self._setup_document()
        self._setup_styles()

    def _setup_document(self):
        self.doc = SimpleDocTemplate(
            self.buffer,
            pagesize=A4,
            topMargin=0.75*inch,
            bottomMargin=0.75*inch,
            leftMargin=0.75*inch,
            rightMargin=0.75*inch,
            title=f"ECU Security Report - {self.report['scan']['ecu_name']}",
        )

    def _setup_styles(self):
        """Define custom paragraph styles for the report."""
        styles = getSampleStyleSheet()

        self.title_style = ParagraphStyle(
            'TitleStyle',
            parent=styles['Heading1'],
            fontSize=24,
            textColor=colors.HexColor('#2c3e50'),
            spaceAfter=20,
            alignment=TA_CENTER,
            fontName='Helvetica-Bold',
            leading=30
        )

        self.subtitle_style = ParagraphStyle(
            'SubtitleStyle',
            parent=styles['Normal'],
            fontSize=11,
            textColor=colors.HexColor('#7f8c8d'),
            alignment=TA_CENTER,
            spaceAfter=15
        )

        self.section_style = ParagraphStyle(
            'SectionStyle',
            parent=styles['Heading2'],
            fontSize=16,
            textColor=colors.HexColor('#2c3e50'),
            spaceAfter=12,
            spaceBefore=20,
            fontName='Helvetica-Bold',
        )

        self.risk_score_style = ParagraphStyle(
            'RiskScoreStyle',
            parent=styles['Normal'],
            fontSize=48,
            leading=56,
            textColor=colors.HexColor('#2c3e50'),
            alignment=TA_CENTER,
            fontName='Helvetica-Bold',
            spaceAfter=10
        )

        self.normal_style = ParagraphStyle(
            'NormalStyle',
            parent=styles['Normal'],
            fontSize=10,
            leading=14,
            alignment=TA_LEFT
        )

        self.finding_title_style = ParagraphStyle(
            'FindingTitleStyle',
            parent=styles['Normal'],
            fontSize=11,
            fontName='Helvetica-Bold',
            spaceAfter=6
        )

        self.finding_desc_style = ParagraphStyle(
            'FindingDescStyle',
            parent=styles['Normal'],
            fontSize=10,
            leading=14,
            alignment=TA_JUSTIFY,
            spaceAfter=6
        )

        self.footer_style = ParagraphStyle(
            'FooterStyle',
            parent=styles['Normal'],
            fontSize=9,
            textColor=colors.HexColor('#95a5a6'),
            alignment=TA_CENTER,
            spaceBefore=20
        )

    def _add_title_page(self):
        scan = self.report['scan']
        self.story.append(Spacer(1, 0.3*inch))
        self.story.append(Paragraph("ECU Firmware Security Assessment", self.title_style))
        self.story.append(HRFlowable(width="100%", thickness=2, color=colors.HexColor('#34495e'), spaceBefore=5, spaceAfter=15))

        metadata_items = [
            f"<b>ECU:</b> {_text(scan['ecu_name'])}",
            f"<b>Type:</b> {_text(scan['ecu_type'])}",
            f"<b>Version:</b> {_text(scan.get('version'))}",
            f"<b>Manufacturer:</b> {_text(scan.get('manufacturer'))}",
            f"<b>Architecture:</b> {_text(scan['architecture'])}",
        ]
        if scan.get('file_name'):
            metadata_items.append(f"<b>File:</b> {_text(scan['file_name'])}")
        self.story.append(Paragraph(" | ".join(metadata_items), self.normal_style))
        self.story.append(Spacer(1, 0.15*inch))

        timestamp = datetime.now(timezone.utc).strftime("%B %d, %Y at %H:%M:%S UTC")
        self.story.append(Paragraph(f"<i>Generated: {timestamp}</i>", self.subtitle_style))
        self.story.append(Spacer(1, 0.3*inch))

    def _add_risk_score_section(self):
        risk = self.report['risk']
        score = risk.get('score')
        band = risk.get('band', 'unknown')
        band_colors = {
            'high': colors.HexColor('#c0392b'),
            'medium': colors.HexColor('#f39c12'),
            'low': colors.HexColor('#27ae60'),
        }

        score_text = f"{score}/100" if score is not None else "N/A"
        self.story.append(Paragraph(score_text, self.risk_score_style))

        band_style = ParagraphStyle(
            'RiskBandStyle',
            parent=self.normal_style,
            fontSize=14,
            textColor=band_colors.get(band, colors.HexColor('#7f8c8d')),
            alignment=TA_CENTER,
            fontName='Helvetica-Bold',
            spaceAfter=15
        )
        self.story.append(Paragraph(f"{band.upper()} RISK", band_style))

        breakdown = self.report['severity_breakdown']
        breakdown_text = " | ".join(f"{level.title()}: {breakdown.get(level, 0)}" for level in SEVERITY_LEVELS)
        breakdown_style = ParagraphStyle(
            'BreakdownStyle',
            parent=self.normal_style,
            alignment=TA_CENTER,
            spaceAfter=15
        )
        self.story.append(Paragraph(breakdown_text, breakdown_style))

        summary_style = ParagraphStyle(
            'SummaryStyle',
            parent=self.normal_style,
            fontSize=11,
            alignment=TA_JUSTIFY,
            spaceAfter=20,
            backColor=colors.HexColor('#ecf0f1'),
            borderPadding=10,
            leftIndent=10,
            rightIndent=10
        )
        summary = _text(self.report.get('executive_summary'), 'No summary available.')
        self.story.append(Paragraph(f"<b>Executive Summary:</b><br/>{summary}", summary_style))

    def _add_finding_item(self, finding: Dict[str, Any]):
        severity = finding['severity']
        severity_hex = self.SEVERITY_COLORS.get(severity, colors.black).hexval().replace('0x', '#')

        refs = " ".join(r for r in (finding.get('cve_id'), finding.get('cwe_id')) if r)
        header = f"<font color='{severity_hex}'>{_text(finding['title'])}</font>"
        if refs:
            header += f" <font color='#7f8c8d'>({_text(refs)})</font>"
        self.story.append(Paragraph(header, self.finding_title_style))

        location = finding.get('affected_component')
        if location and finding.get('line_number') is not None:
            location = f"{location}:{finding['line_number']}"
        details = [
            f"<b>CVSS:</b> {_text(finding.get('cvss_score'))}",
            f"<b>Location:</b> {_text(location)}",
            f"<b>Status:</b> {_text(finding.get('status'))}",
        ]
        self.story.append(Paragraph(" | ".join(details), self.finding_desc_style))
        self.story.append(Paragraph(
            f"<b>Description:</b> {_text(finding.get('description'), 'No description provided.')}",
            self.finding_desc_style,
        ))

        rec_style = ParagraphStyle(
            'RecommendationStyle',
            parent=self.finding_desc_style,
            backColor=colors.HexColor('#f8f9fa'),
            borderPadding=8,
            leftIndent=5,
            rightIndent=5,
            spaceAfter=12
        )
        self.story.append(Paragraph(
            f"<b>Remediation:</b> {_text(finding.get('remediation'), 'No remediation provided.')}",
            rec_style,
        ))
        self.story.append(HRFlowable(width="100%", thickness=0.5, color=colors.HexColor('#bdc3c7'), spaceBefore=5, spaceAfter=10))

    def _add_findings_section(self):
        grouped = self.report['vulnerabilities']
        self.story.append(Paragraph("Vulnerabilities", self.section_style))

        if not any(grouped.get(level) for level in SEVERITY_LEVELS):
            self.story.append(Paragraph("No vulnerabilities detected.", self.normal_style))
            return

        for severity in SEVERITY_LEVELS:
            findings = grouped.get(severity, [])
            if not findings:
                continue
            severity_style = ParagraphStyle(
                'SeverityHeaderStyle',
                parent=self.section_style,
                fontSize=13,
                textColor=self.SEVERITY_COLORS[severity],
                spaceBefore=12,
                spaceAfter=8
            )
            title = f"{severity.upper()} SEVERITY ({len(findings)} finding{'s' if len(findings) != 1 else ''})"
            self.story.append(Paragraph(title, severity_style))
            for finding in findings:
                self._add_finding_item(finding)

    def _table(self, rows: List[List[str]], col_widths: List[float]) -> Table:
        table = Table(rows, colWidths=col_widths, repeatRows=1)
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#34495e')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#bdc3c7')),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f8f9fa')]),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        return table

    def _add_compliance_section(self):
        compliance = self.report['compliance']
        self.story.append(Paragraph("Compliance", self.section_style))
        self.story.append(Paragraph(
            f"Overall pass rate: <b>{compliance['overall_pass_rate']}%</b> "
            f"across {len(compliance['results'])} checks",
            self.normal_style,
        ))
        self.story.append(Spacer(1, 0.1*inch))

        rows = [["Framework", "Checks", "Pass", "Fail", "Warning", "Pass rate"]]
        for fw in compliance['frameworks']:
            rows.append([
                fw['name'], str(fw['total']), str(fw['passed']),
                str(fw['failed']), str(fw['warnings']), f"{fw['pass_rate']}%",
            ])
        self.story.append(self._table(rows, [2.2*inch, 0.8*inch, 0.7*inch, 0.7*inch, 0.8*inch, 0.9*inch]))

    def _add_sbom_section(self):
        sbom = self.report['sbom']
        self.story.append(Paragraph("Software Bill of Materials", self.section_style))
        if not sbom['components']:
            self.story.append(Paragraph("No SBOM components detected.", self.normal_style))
            return

        rows = [["Component", "Version", "License", "License status", "Known CVEs"]]
        for component in sbom['components']:
            rows.append([
                component['component_name'],
                component.get('version') or 'Unknown',
                component.get('license') or 'Unknown',
                component['license_status'],
                str(len(component.get('vulnerabilities') or [])),
            ])
        self.story.append(self._table(rows, [1.9*inch, 1.0*inch, 1.2*inch, 1.1*inch, 0.9*inch]))

    def _add_footer(self):
        self.story.append(Spacer(1, 0.3*inch))
        self.story.append(HRFlowable(width="100%", thickness=1, color=colors.HexColor('#ecf0f1'), spaceBefore=10, spaceAfter=10))
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        self.story.append(Paragraph(f"Generated by ECU ScanGuard | {timestamp}", self.footer_style))

    def build(self) -> bytes:
        """
        Build the complete PDF report and return PDF bytes.

        Returns:
            bytes: Raw PDF bytes
        """
        self._add_title_page()
        self._add_risk_score_section()
        self._add_findings_section()
        self._add_compliance_section()
        self._add_sbom_section()
        self._add_footer()

        try:
            self.doc.build(self.story)
            return self.buffer.getvalue()
        except Exception as e:
            logger.error(f"Error generating PDF: {e}", exc_info=True)
            raise
        finally:
            self.buffer.close()


def generate_scan_report_pdf(report: Dict[str, Any]) -> bytes:
    """
    Generate a PDF security report for one scan.

    Args:
        report: Structured report document (see ReportService.build_report)

    Returns:
        bytes: Raw PDF bytes
    """
    return PDFReportBuilder(report).build()
