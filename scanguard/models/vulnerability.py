"""Vulnerability database model."""
import enum

from sqlalchemy import Column, Integer, String, Text, Float, ForeignKey, DateTime, JSON, event, inspect
from sqlalchemy.orm import relationship

from scanguard.core.database import Base, enum_column_type
from scanguard.core.exceptions import ImmutableRecordError
from scanguard.utils.timezone import get_now


class Severity(str, enum.Enum):
    """Finding severity, ordered by decreasing urgency."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


SEVERITY_ORDER = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}


class VulnerabilityStatus(str, enum.Enum):
    """Triage status set by human reviewers."""
    NEW = "new"
    REOPENED = "reopened"
    FIXED = "fixed"
    FALSE_POSITIVE = "false_positive"
    RISK_ACCEPTED = "risk_accepted"


# Statuses that still count against the ECU
OPEN_STATUSES = (VulnerabilityStatus.NEW, VulnerabilityStatus.REOPENED)

# Everything else is written once by the analysis pipeline
MUTABLE_FIELDS = frozenset({"status", "updated_at"})


class Vulnerability(Base):
    """Vulnerability found in a scanned firmware image or repository."""
    __tablename__ = "vulnerabilities"

    id = Column(Integer, primary_key=True, index=True)
    scan_id = Column(String(36), ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True)

    severity = Column(enum_column_type(Severity, "severity_level"), nullable=False, index=True)
    cwe_id = Column(String(50), nullable=True, index=True)
    cve_id = Column(String(50), nullable=True, index=True)
    cvss_score = Column(Float, nullable=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    affected_component = Column(String(500), nullable=True)
    affected_function = Column(String(255), nullable=True)
    code_snippet = Column(Text, nullable=True)
    line_number = Column(Integer, nullable=True)
    detection_method = Column(String(100), nullable=True)
    remediation = Column(Text, nullable=True)
    attack_vector = Column(String(255), nullable=True)
    impact = Column(Text, nullable=True)
    llm_enrichment = Column(JSON, nullable=True)

    status = Column(
        enum_column_type(VulnerabilityStatus, "vulnerability_status"),
        nullable=False,
        default=VulnerabilityStatus.NEW,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=get_now, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=get_now, onupdate=get_now)

    scan = relationship("Scan", back_populates="vulnerabilities")


@event.listens_for(Vulnerability, "before_update")
def _only_status_is_mutable(mapper, connection, target):
    state = inspect(target)
    changed = {
        attr.key for attr in mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }
    illegal = changed - MUTABLE_FIELDS
    if illegal:
        raise ImmutableRecordError(
            f"Vulnerability {target.id}: only status can change after creation (attempted: {', '.join(sorted(illegal))})"
        )
