"""
Service for scan records and their result stores.
"""
import logging
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from scanguard.core.exceptions import ScanClosedError, ScanNotFoundError, VulnerabilityNotFoundError
from scanguard.models.analysis_log import AnalysisLog, LogLevel
from scanguard.models.compliance_result import ComplianceResult
from scanguard.models.sbom_component import SbomComponent
from scanguard.models.scan import EcuType, Scan, ScanStatus
from scanguard.models.vulnerability import Severity, Vulnerability, VulnerabilityStatus
from scanguard.schemas.compliance import ComplianceResultCreate
from scanguard.schemas.sbom import SbomComponentCreate
from scanguard.schemas.scan import ScanCreate
from scanguard.schemas.vulnerability import VulnerabilityCreate
from scanguard.services import pipeline
from scanguard.services.change_feed import publish_change
from scanguard.utils.timezone import get_now

logger = logging.getLogger(__name__)

# Statuses a crashed driver can leave a scan stuck in
IN_FLIGHT_STATUSES = (
    ScanStatus.PARSING,
    ScanStatus.DECOMPILING,
    ScanStatus.ANALYZING,
    ScanStatus.ENRICHING,
)


class ScanService:
    """Service for scan lifecycle and result record persistence."""

    def __init__(self, db: Session):
        """
        Initialize scan service.

        Args:
            db: Database session
        """
        self.db = db

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def create_scan(self, data: ScanCreate) -> Scan:
        """Create a scan in queued state with 0% progress."""
        scan = Scan(
            ecu_name=data.ecu_name,
            ecu_type=data.ecu_type,
            version=data.version,
            manufacturer=data.manufacturer,
            platform=data.platform,
            architecture=data.architecture,
            file_name=data.file_name,
            file_size=data.file_size,
            file_hash=data.file_hash,
            compliance_frameworks=list(data.compliance_frameworks),
            deep_analysis=data.deep_analysis,
            scan_metadata=data.metadata.model_dump(exclude_none=True),
            status=ScanStatus.QUEUED,
            progress=0,
        )
        self.db.add(scan)
        self.db.commit()
        self.db.refresh(scan)

        logger.info(
            f"Scan created: id={scan.id}, ecu_name='{scan.ecu_name}', "
            f"ecu_type={scan.ecu_type.value}, frameworks={scan.compliance_frameworks}"
        )
        publish_change("scans", "INSERT", scan.id, scan.id, {"status": scan.status.value})
        return scan

    def get_scan(self, scan_id: str) -> Scan:
        scan = self.db.get(Scan, scan_id)
        if scan is None:
            raise ScanNotFoundError(scan_id)
        return scan

    def list_scans(
        self,
        status: Optional[ScanStatus] = None,
        ecu_type: Optional[EcuType] = None,
        ecu_name: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Scan], int]:
        """List scans newest first; returns (items, total)."""
        query = self.db.query(Scan)
        if status is not None:
            query = query.filter(Scan.status == status)
        if ecu_type is not None:
            query = query.filter(Scan.ecu_type == ecu_type)
        if ecu_name:
            query = query.filter(Scan.ecu_name == ecu_name)

        total = query.count()
        items = (
            query.order_by(Scan.created_at.desc(), Scan.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def delete_scan(self, scan_id: str) -> None:
        """Hard-delete a scan; vulnerabilities, compliance, SBOM and logs go with it."""
        scan = self.get_scan(scan_id)
        self.db.delete(scan)
        self.db.commit()
        logger.info(f"Deleted scan: id={scan_id}")
        publish_change("scans", "DELETE", scan_id, scan_id)

    # ------------------------------------------------------------------
    # Child reads, ordered by creation
    # ------------------------------------------------------------------

    def list_vulnerabilities(
        self,
        scan_id: Optional[str] = None,
        severity: Optional[Severity] = None,
        status: Optional[VulnerabilityStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[List[Vulnerability], int]:
        query = self.db.query(Vulnerability)
        if scan_id is not None:
            self.get_scan(scan_id)
            query = query.filter(Vulnerability.scan_id == scan_id)
        if severity is not None:
            query = query.filter(Vulnerability.severity == severity)
        if status is not None:
            query = query.filter(Vulnerability.status == status)

        total = query.count()
        query = query.order_by(Vulnerability.created_at, Vulnerability.id).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all(), total

    def list_compliance_results(self, scan_id: str) -> List[ComplianceResult]:
        self.get_scan(scan_id)
        return (
            self.db.query(ComplianceResult)
            .filter(ComplianceResult.scan_id == scan_id)
            .order_by(ComplianceResult.created_at, ComplianceResult.id)
            .all()
        )

    def list_sbom_components(self, scan_id: str) -> List[SbomComponent]:
        self.get_scan(scan_id)
        return (
            self.db.query(SbomComponent)
            .filter(SbomComponent.scan_id == scan_id)
            .order_by(SbomComponent.component_name, SbomComponent.id)
            .all()
        )

    def list_logs(self, scan_id: str) -> List[AnalysisLog]:
        self.get_scan(scan_id)
        return (
            self.db.query(AnalysisLog)
            .filter(AnalysisLog.scan_id == scan_id)
            .order_by(AnalysisLog.created_at, AnalysisLog.id)
            .all()
        )

    # ------------------------------------------------------------------
    # Result record inserts (write-once, only while the scan is running)
    # ------------------------------------------------------------------

    def _ensure_open(self, scan: Scan) -> None:
        self.db.refresh(scan)
        if pipeline.is_terminal(scan.status):
            raise ScanClosedError(
                f"Scan {scan.id} is {scan.status.value}; result records can no longer be added"
            )

    def add_vulnerability(self, scan: Scan, data: VulnerabilityCreate) -> Vulnerability:
        self._ensure_open(scan)
        payload = data.model_dump(exclude={"llm_enrichment"})
        enrichment = None
        if data.llm_enrichment is not None and not data.llm_enrichment.is_empty():
            enrichment = data.llm_enrichment.model_dump()
        vuln = Vulnerability(scan_id=scan.id, llm_enrichment=enrichment, **payload)
        self.db.add(vuln)
        self.db.commit()
        publish_change("vulnerabilities", "INSERT", vuln.id, scan.id, {"severity": vuln.severity.value})
        return vuln

    def add_compliance_result(self, scan: Scan, data: ComplianceResultCreate) -> ComplianceResult:
        self._ensure_open(scan)
        result = ComplianceResult(scan_id=scan.id, **data.model_dump())
        self.db.add(result)
        self.db.commit()
        return result

    def add_sbom_component(self, scan: Scan, data: SbomComponentCreate) -> SbomComponent:
        self._ensure_open(scan)
        component = SbomComponent(scan_id=scan.id, **data.model_dump())
        self.db.add(component)
        self.db.commit()
        return component

    def record_results(
        self,
        scan: Scan,
        vulnerabilities: List[VulnerabilityCreate],
        compliance_results: List[ComplianceResultCreate],
        sbom_components: List[SbomComponentCreate],
    ) -> Dict[str, Dict[str, int]]:
        """
        Insert result records one commit at a time, best effort.

        A failing insert is rolled back on its own, logged, and skipped;
        earlier inserts stay. A closed scan stops the run since every later
        insert would fail the same way.
        """
        counts = {
            "vulnerabilities": {"inserted": 0, "failed": 0},
            "compliance_results": {"inserted": 0, "failed": 0},
            "sbom_components": {"inserted": 0, "failed": 0},
        }
        batches = [
            ("vulnerabilities", vulnerabilities, self.add_vulnerability),
            ("compliance_results", compliance_results, self.add_compliance_result),
            ("sbom_components", sbom_components, self.add_sbom_component),
        ]
        for kind, records, insert in batches:
            for record in records:
                try:
                    insert(scan, record)
                    counts[kind]["inserted"] += 1
                except ScanClosedError:
                    raise
                except Exception as e:
                    self.db.rollback()
                    counts[kind]["failed"] += 1
                    logger.warning(f"Failed to insert {kind} record for scan {scan.id}: {e}", exc_info=True)
                    try:
                        pipeline.append_log(
                            self.db, scan.id, scan.status.value,
                            f"Failed to store {kind.replace('_', ' ')} record: {e}",
                            level=LogLevel.WARNING,
                        )
                    except Exception as log_error:
                        self.db.rollback()
                        logger.error(f"Could not persist insert-failure log for scan {scan.id}: {log_error}")
        return counts

    # ------------------------------------------------------------------
    # Reviewer actions
    # ------------------------------------------------------------------

    def get_vulnerability(self, vulnerability_id: int) -> Vulnerability:
        vuln = self.db.get(Vulnerability, vulnerability_id)
        if vuln is None:
            raise VulnerabilityNotFoundError(vulnerability_id)
        return vuln

    def update_vulnerability_status(self, vulnerability_id: int, status: VulnerabilityStatus) -> Vulnerability:
        """Any status in the enum is accepted; there is no transition graph for triage."""
        vuln = self.get_vulnerability(vulnerability_id)
        previous = vuln.status
        vuln.status = status
        self.db.commit()
        self.db.refresh(vuln)
        logger.info(
            f"Vulnerability {vulnerability_id} status changed: {previous.value} -> {status.value}"
        )
        publish_change("vulnerabilities", "UPDATE", vuln.id, vuln.scan_id, {"status": status.value})
        return vuln

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def fail_stale_scans(self, timeout_minutes: int) -> List[str]:
        """
        Fail scans whose driver stopped reporting progress.

        Queued scans are left alone: nothing has claimed them yet.
        """
        cutoff = get_now() - timedelta(minutes=timeout_minutes)
        stale = (
            self.db.query(Scan)
            .filter(Scan.status.in_(IN_FLIGHT_STATUSES), Scan.updated_at < cutoff)
            .all()
        )
        failed = []
        for scan in stale:
            try:
                pipeline.fail_scan(
                    self.db, scan,
                    f"Analysis timed out: no progress for {timeout_minutes} minutes",
                )
                failed.append(scan.id)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to mark stale scan {scan.id} as failed: {e}", exc_info=True)
        if failed:
            logger.warning(f"Marked {len(failed)} stale scan(s) as failed: {failed}")
        return failed
