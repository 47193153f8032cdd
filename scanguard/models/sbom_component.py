"""SBOM component database model."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, JSON, event, inspect
from sqlalchemy.orm import relationship

from scanguard.core.database import Base
from scanguard.core.exceptions import ImmutableRecordError
from scanguard.utils.timezone import get_now


class SbomComponent(Base):
    """Third-party component identified in a firmware image or repository."""
    __tablename__ = "sbom_components"

    id = Column(Integer, primary_key=True, index=True)
    scan_id = Column(String(36), ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True)
    component_name = Column(String(255), nullable=False, index=True)
    version = Column(String(100), nullable=True)
    license = Column(String(100), nullable=True)
    source_file = Column(String(500), nullable=True)
    vulnerabilities = Column(JSON, nullable=False, default=list)  # associated CVE/finding identifiers
    created_at = Column(DateTime(timezone=True), nullable=False, default=get_now)

    scan = relationship("Scan", back_populates="sbom_components")


@event.listens_for(SbomComponent, "before_update")
def _sbom_components_are_immutable(mapper, connection, target):
    state = inspect(target)
    if any(state.attrs[attr.key].history.has_changes() for attr in mapper.column_attrs):
        raise ImmutableRecordError(f"SbomComponent {target.id} is immutable after insertion")
