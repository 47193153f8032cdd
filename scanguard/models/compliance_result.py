"""Compliance result database model."""
import enum

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, event, inspect
from sqlalchemy.orm import relationship

from scanguard.core.database import Base, enum_column_type
from scanguard.core.exceptions import ImmutableRecordError
from scanguard.utils.timezone import get_now


class ComplianceStatus(str, enum.Enum):
    """Outcome of one compliance rule check."""
    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"


class ComplianceResult(Base):
    """Result of checking one framework rule against a scan."""
    __tablename__ = "compliance_results"

    id = Column(Integer, primary_key=True, index=True)
    scan_id = Column(String(36), ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True)
    framework = Column(String(255), nullable=False, index=True)  # free text, e.g. "ISO/SAE 21434"
    rule_id = Column(String(100), nullable=False)
    rule_description = Column(Text, nullable=True)
    status = Column(enum_column_type(ComplianceStatus, "compliance_status"), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=get_now, index=True)

    scan = relationship("Scan", back_populates="compliance_results")


@event.listens_for(ComplianceResult, "before_update")
def _compliance_results_are_immutable(mapper, connection, target):
    state = inspect(target)
    if any(state.attrs[attr.key].history.has_changes() for attr in mapper.column_attrs):
        raise ImmutableRecordError(f"ComplianceResult {target.id} is immutable after insertion")
