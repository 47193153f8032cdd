"""CVE cache database model."""
from sqlalchemy import Column, Integer, String, Text, Float, DateTime, JSON

from scanguard.core.database import Base
from scanguard.utils.timezone import get_now


class CveCache(Base):
    """Cached NVD record for a CVE id."""
    __tablename__ = "cve_cache"

    id = Column(Integer, primary_key=True, index=True)
    cve_id = Column(String(50), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    cvss_score = Column(Float, nullable=True)
    severity = Column(String(20), nullable=True)
    cwe_ids = Column(JSON, nullable=False, default=list)
    published_date = Column(DateTime(timezone=True), nullable=True)
    modified_date = Column(DateTime(timezone=True), nullable=True)
    reference_links = Column(JSON, nullable=False, default=list)
    affected_products = Column(JSON, nullable=False, default=list)
    fetched_at = Column(DateTime(timezone=True), nullable=False, default=get_now)
