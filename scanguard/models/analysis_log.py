"""Analysis log database model."""
import enum

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship

from scanguard.core.database import Base, enum_column_type
from scanguard.utils.timezone import get_now


class LogLevel(str, enum.Enum):
    """Level of a persisted pipeline log entry."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AnalysisLog(Base):
    """Append-only audit trail entry for a scan's pipeline run."""
    __tablename__ = "analysis_logs"

    id = Column(Integer, primary_key=True, index=True)
    scan_id = Column(String(36), ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True)
    stage = Column(String(50), nullable=False)
    log_level = Column(enum_column_type(LogLevel, "log_level"), nullable=False, default=LogLevel.INFO)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=get_now, index=True)

    scan = relationship("Scan", back_populates="analysis_logs")
