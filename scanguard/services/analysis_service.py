"""
Pipeline executor: drives one scan from parsing to complete.

The same executor handles binary uploads and repository sources; only
the parsing stage differs. Results stay in memory until the enriching
stage so vulnerabilities are written once, already enriched.
"""
import hashlib
import logging
import time
from typing import Callable, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from scanguard.core.config import settings
from scanguard.core.exceptions import InvalidTransitionError, RepositoryFetchError, ScanNotFoundError
from scanguard.models.analysis_log import LogLevel
from scanguard.models.scan import Scan, ScanStatus
from scanguard.models.vulnerability import Severity
from scanguard.schemas.analysis import BinarySource, PiiFinding, RepositorySource, SecretFinding
from scanguard.schemas.vulnerability import VulnerabilityCreate
from scanguard.services import pipeline
from scanguard.services.analyzers import Analyzer, SourceContext, get_analyzer
from scanguard.services.compliance import filter_selected, pass_rate
from scanguard.services.repository_service import RepositoryService
from scanguard.services.risk import clamp_risk_score, risk_band, risk_score_for, severity_breakdown
from scanguard.services.scan_service import ScanService
from scanguard.utils.content_preview import binary_preview, repository_preview

logger = logging.getLogger(__name__)

Source = Union[BinarySource, RepositorySource]

PII_CWE = "CWE-359"
SECRET_CWE = "CWE-798"

PII_REMEDIATION = (
    "Remove personal data from the firmware image. Collect it at runtime with consent "
    "and store it encrypted."
)
SECRET_REMEDIATION = (
    "Remove the secret from the firmware and rotate it. Provision credentials per vehicle "
    "into secure storage (HSM/TPM) at end of line."
)


def _split_location(location: Optional[str]) -> Tuple[Optional[str], Optional[int]]:
    """"src/main.c:42" -> ("src/main.c", 42); a missing or odd line part gives None."""
    if not location:
        return None, None
    parts = location.split(":")
    component = parts[0] or None
    line = None
    if len(parts) > 1 and parts[1].strip().isdigit():
        line = int(parts[1].strip())
    return component, line


def pii_to_vulnerability(finding: PiiFinding) -> VulnerabilityCreate:
    component, line = _split_location(finding.location)
    return VulnerabilityCreate(
        severity=finding.severity,
        title=f"PII Exposure: {finding.type}",
        cwe_id=PII_CWE,
        description=finding.context or f"Personal data ({finding.type}) embedded in firmware.",
        affected_component=component,
        line_number=line,
        code_snippet=finding.value,
        detection_method="llm",
        remediation=finding.remediation or PII_REMEDIATION,
        attack_vector="Firmware extraction",
        impact="Exposure of personal data, privacy regulation violation (GDPR)",
    )


def secret_to_vulnerability(finding: SecretFinding) -> VulnerabilityCreate:
    component, line = _split_location(finding.location)
    return VulnerabilityCreate(
        severity=finding.severity,
        title=f"Hardcoded Secret: {finding.type}",
        cwe_id=SECRET_CWE,
        description=finding.context or f"Hard-coded {finding.type} found in firmware.",
        affected_component=component,
        line_number=line,
        code_snippet=finding.value,
        detection_method="llm",
        remediation=finding.remediation or SECRET_REMEDIATION,
        attack_vector="Firmware extraction and reverse engineering",
        impact="Credential compromise enabling unauthorized access to backend or vehicle functions",
    )


def build_executive_summary(scan: Scan, vulnerabilities: List, compliance_results: List, risk_score: int) -> str:
    """Plain-language summary used when the analyzer did not write one."""
    breakdown = severity_breakdown(vulnerabilities)
    total = len(vulnerabilities)
    summary = (
        f"Security analysis of {scan.ecu_name} ({scan.ecu_type.value}, {scan.architecture.value}) "
        f"identified {total} vulnerabilit{'y' if total == 1 else 'ies'}: "
        f"{breakdown['critical']} critical, {breakdown['high']} high, {breakdown['medium']} medium "
        f"and {breakdown['low'] + breakdown['info']} low or informational. "
        f"The overall risk score is {risk_score}/100 ({risk_band(risk_score)} risk)."
    )
    if compliance_results:
        summary += f" {pass_rate(compliance_results)}% of the {len(compliance_results)} compliance checks passed."
    if breakdown["critical"]:
        summary += " Critical findings should be remediated before this firmware is released."
    return summary


class AnalysisPipeline:
    """Runs the staged analysis for one scan in its own database session."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        analyzer: Optional[Analyzer] = None,
        repository_service: Optional[RepositoryService] = None,
        stage_delay: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.analyzer = analyzer
        self.repository_service = repository_service
        self.stage_delay = settings.PIPELINE_STAGE_DELAY_SECONDS if stage_delay is None else stage_delay

    def _pause(self) -> None:
        if self.stage_delay and self.stage_delay > 0:
            time.sleep(self.stage_delay)

    def run(self, scan_id: str, source: Source, claimed: bool = False) -> Optional[Scan]:
        """
        Execute the pipeline for a scan.

        Args:
            scan_id: Scan to analyze
            source: Binary or repository source
            claimed: True when the caller already moved the scan to parsing

        Returns:
            The scan in its final state, or None when it could not be claimed
        """
        db = self.session_factory()
        try:
            if claimed:
                scan = db.get(Scan, scan_id)
                if scan is None or scan.status != ScanStatus.PARSING:
                    logger.warning(f"Scan {scan_id} is not in parsing state; pipeline not started")
                    return None
            else:
                try:
                    scan = pipeline.claim_scan(db, scan_id)
                except (ScanNotFoundError, InvalidTransitionError) as e:
                    logger.warning(f"Pipeline not started for scan {scan_id}: {e}")
                    return None

            try:
                self._execute(db, scan, source)
            except Exception as e:
                db.rollback()
                logger.error(f"Analysis failed for scan {scan_id}: {e}", exc_info=True)
                self._fail(db, scan_id, f"Analysis failed: {e}")

            scan = db.get(Scan, scan_id)
            if scan is not None:
                db.refresh(scan)
            return scan
        finally:
            db.close()

    def _fail(self, db: Session, scan_id: str, reason: str) -> None:
        scan = db.get(Scan, scan_id)
        if scan is None:
            logger.warning(f"Scan {scan_id} disappeared before it could be marked failed")
            return
        db.refresh(scan)
        if scan.is_terminal:
            logger.warning(f"Scan {scan_id} already {scan.status.value}; not marking failed")
            return
        try:
            pipeline.fail_scan(db, scan, reason)
        except Exception as e:
            db.rollback()
            logger.error(f"Could not mark scan {scan_id} as failed: {e}", exc_info=True)

    def _execute(self, db: Session, scan: Scan, source: Source) -> None:
        analyzer = self.analyzer or get_analyzer()

        # parsing
        context = self._parse(db, scan, source)
        self._pause()

        # decompiling
        pipeline.transition(db, scan, ScanStatus.DECOMPILING)
        pipeline.append_log(
            db, scan.id, ScanStatus.DECOMPILING.value,
            f"Detected architecture: {scan.architecture.value}",
        )
        if scan.deep_analysis:
            pipeline.append_log(
                db, scan.id, ScanStatus.DECOMPILING.value,
                "Deep analysis requested: full control-flow recovery enabled",
            )
        self._pause()

        # analyzing
        pipeline.transition(db, scan, ScanStatus.ANALYZING)
        pipeline.append_log(db, scan.id, ScanStatus.ANALYZING.value, f"Running {analyzer.name} analysis engine")
        result = analyzer.analyze(scan, context)
        vulnerabilities = (
            list(result.vulnerabilities)
            + [pii_to_vulnerability(f) for f in result.pii_findings]
            + [secret_to_vulnerability(f) for f in result.secret_findings]
        )
        pipeline.transition(db, scan, ScanStatus.ANALYZING, progress=65)
        pipeline.append_log(
            db, scan.id, ScanStatus.ANALYZING.value,
            f"Analysis returned {len(vulnerabilities)} vulnerabilities, "
            f"{len(result.compliance_results)} compliance results and "
            f"{len(result.sbom_components)} SBOM components",
        )
        self._pause()

        # enriching
        pipeline.transition(db, scan, ScanStatus.ENRICHING)
        if analyzer.supports_enrichment:
            vulnerabilities = self._enrich(db, scan, analyzer, vulnerabilities)
        compliance = filter_selected(result.compliance_results, scan.compliance_frameworks)
        if len(compliance) != len(result.compliance_results):
            pipeline.append_log(
                db, scan.id, ScanStatus.ENRICHING.value,
                f"Kept {len(compliance)} of {len(result.compliance_results)} compliance results "
                f"for selected frameworks: {', '.join(scan.compliance_frameworks)}",
            )

        counts = ScanService(db).record_results(scan, vulnerabilities, compliance, result.sbom_components)
        pipeline.append_log(
            db, scan.id, ScanStatus.ENRICHING.value,
            f"Stored {counts['vulnerabilities']['inserted']} vulnerabilities, "
            f"{counts['compliance_results']['inserted']} compliance results and "
            f"{counts['sbom_components']['inserted']} SBOM components",
        )
        self._log_highlights(db, scan, vulnerabilities, result.pii_findings, result.secret_findings)
        self._pause()

        # complete: derived values count only the rows that were stored
        scans = ScanService(db)
        stored_vulnerabilities, _ = scans.list_vulnerabilities(scan_id=scan.id)
        stored_compliance = scans.list_compliance_results(scan.id)
        if result.risk_score is not None:
            risk_score = clamp_risk_score(result.risk_score)
        else:
            risk_score = risk_score_for(stored_vulnerabilities)
        summary = result.executive_summary or build_executive_summary(
            scan, stored_vulnerabilities, stored_compliance, risk_score
        )
        pipeline.transition(
            db, scan, ScanStatus.COMPLETE,
            progress=100,
            risk_score=risk_score,
            executive_summary=summary,
        )
        logger.info(
            f"Scan {scan.id} complete: risk_score={risk_score}, vulnerabilities={len(stored_vulnerabilities)}"
        )

    def _parse(self, db: Session, scan: Scan, source: Source) -> SourceContext:
        if isinstance(source, RepositorySource):
            service = self.repository_service or RepositoryService()
            snapshot = service.fetch(source.url, source.branch, source.provider, source.access_token)
            if not snapshot.files:
                raise RepositoryFetchError(f"No analyzable source files found in {snapshot.full_name}")
            context = SourceContext(
                kind="repository",
                file_name=snapshot.full_name,
                preview=repository_preview(snapshot.files),
                is_text=True,
                size=sum(f.size for f in snapshot.files),
                files=[f.path for f in snapshot.files],
            )
            if not scan.file_name:
                scan.file_name = snapshot.full_name
            db.commit()
            pipeline.append_log(
                db, scan.id, ScanStatus.PARSING.value,
                f"Fetched {len(snapshot.files)} source files from {snapshot.full_name}@{snapshot.branch}",
            )
            return context

        data = source.decode()
        if not data:
            raise ValueError(f"Firmware file {source.file_name} is empty")
        digest = hashlib.sha256(data).hexdigest()
        preview, is_text = binary_preview(source.file_name, data)
        if not scan.file_name:
            scan.file_name = source.file_name
        if scan.file_size is None:
            scan.file_size = len(data)
        if not scan.file_hash:
            scan.file_hash = digest
        db.commit()
        pipeline.append_log(
            db, scan.id, ScanStatus.PARSING.value,
            f"Parsed {'source file' if is_text else 'binary image'} {source.file_name}: "
            f"{len(data)} bytes, sha256 {digest[:16]}",
        )
        return SourceContext(
            kind="binary",
            file_name=source.file_name,
            preview=preview,
            is_text=is_text,
            size=len(data),
            sha256=digest,
        )

    def _enrich(self, db: Session, scan: Scan, analyzer: Analyzer, vulnerabilities: List[VulnerabilityCreate]):
        targets = [v for v in vulnerabilities if v.severity in (Severity.CRITICAL, Severity.HIGH)]
        if not targets:
            return vulnerabilities
        pipeline.append_log(
            db, scan.id, ScanStatus.ENRICHING.value,
            f"Enriching {len(targets)} critical/high vulnerabilities",
        )
        enriched = []
        succeeded = 0
        for vuln in vulnerabilities:
            if vuln.severity in (Severity.CRITICAL, Severity.HIGH):
                enrichment = analyzer.enrich(vuln)
                if enrichment is not None and not enrichment.is_empty():
                    vuln = vuln.model_copy(update={"llm_enrichment": enrichment})
                    succeeded += 1
            enriched.append(vuln)
        if succeeded < len(targets):
            pipeline.append_log(
                db, scan.id, ScanStatus.ENRICHING.value,
                f"Enrichment unavailable for {len(targets) - succeeded} vulnerabilities",
                level=LogLevel.WARNING,
            )
        return enriched

    def _log_highlights(self, db: Session, scan: Scan, vulnerabilities, pii_findings, secret_findings) -> None:
        critical = severity_breakdown(vulnerabilities)["critical"]
        stage = ScanStatus.ENRICHING.value
        if critical:
            pipeline.append_log(
                db, scan.id, stage,
                f"CRITICAL: Found {critical} critical vulnerability(ies)",
                level=LogLevel.ERROR,
            )
        if secret_findings:
            kinds = ", ".join(sorted({f.type for f in secret_findings}))
            pipeline.append_log(
                db, scan.id, stage,
                f"SECRETS DETECTED: {len(secret_findings)} hardcoded secret(s) ({kinds})",
                level=LogLevel.ERROR,
            )
        if pii_findings:
            kinds = ", ".join(sorted({f.type for f in pii_findings}))
            pipeline.append_log(
                db, scan.id, stage,
                f"PII DETECTED: {len(pii_findings)} personal data finding(s) ({kinds})",
                level=LogLevel.WARNING,
            )


def run_analysis(session_factory: Callable[[], Session], scan_id: str, source: Source, claimed: bool = True) -> None:
    """Background-task entry point."""
    AnalysisPipeline(session_factory).run(scan_id, source, claimed=claimed)
