"""Scan database model."""
import enum
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON
from sqlalchemy.orm import relationship

from scanguard.core.database import Base, enum_column_type
from scanguard.utils.timezone import get_now


class ScanStatus(str, enum.Enum):
    """Pipeline status of a scan."""
    QUEUED = "queued"
    PARSING = "parsing"
    DECOMPILING = "decompiling"
    ANALYZING = "analyzing"
    ENRICHING = "enriching"
    COMPLETE = "complete"
    FAILED = "failed"


class EcuType(str, enum.Enum):
    """Kind of electronic control unit the firmware belongs to."""
    ENGINE = "Engine"
    TRANSMISSION = "Transmission"
    BCM = "BCM"
    TCU = "TCU"
    ADAS = "ADAS"
    INFOTAINMENT = "Infotainment"
    GATEWAY = "Gateway"
    OTHER = "Other"


class Architecture(str, enum.Enum):
    """Target CPU architecture of the firmware."""
    ARM = "ARM"
    POWERPC = "PowerPC"
    TRICORE = "TriCore"
    X86 = "x86"
    UNKNOWN = "Unknown"


def _new_scan_id() -> str:
    return str(uuid.uuid4())


class Scan(Base):
    """One firmware or repository analysis job."""
    __tablename__ = "scans"

    id = Column(String(36), primary_key=True, default=_new_scan_id)

    # ECU metadata
    ecu_name = Column(String(255), nullable=False, index=True)
    ecu_type = Column(enum_column_type(EcuType, "ecu_type"), nullable=False, default=EcuType.OTHER, index=True)
    version = Column(String(100), nullable=True)
    manufacturer = Column(String(255), nullable=True)
    platform = Column(String(255), nullable=True)
    architecture = Column(enum_column_type(Architecture, "architecture"), nullable=False, default=Architecture.UNKNOWN)

    # Source artefact
    file_name = Column(String(500), nullable=True)
    file_size = Column(Integer, nullable=True)
    file_hash = Column(String(64), nullable=True)

    compliance_frameworks = Column(JSON, nullable=False, default=list)
    deep_analysis = Column(Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative classes
    scan_metadata = Column("metadata", JSON, nullable=False, default=dict)

    # Pipeline state
    status = Column(enum_column_type(ScanStatus, "scan_status"), nullable=False, default=ScanStatus.QUEUED, index=True)
    progress = Column(Integer, nullable=False, default=0)
    risk_score = Column(Integer, nullable=True)
    executive_summary = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=get_now, index=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=get_now, onupdate=get_now)

    # Relationships
    vulnerabilities = relationship(
        "Vulnerability", back_populates="scan", cascade="all, delete-orphan"
    )
    compliance_results = relationship(
        "ComplianceResult", back_populates="scan", cascade="all, delete-orphan"
    )
    sbom_components = relationship(
        "SbomComponent", back_populates="scan", cascade="all, delete-orphan"
    )
    analysis_logs = relationship(
        "AnalysisLog", back_populates="scan", cascade="all, delete-orphan"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (ScanStatus.COMPLETE, ScanStatus.FAILED)

    def __repr__(self) -> str:
        return f"<Scan {self.id} {self.ecu_name!r} status={self.status.value if self.status else None}>"
