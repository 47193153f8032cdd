"""Schemas for scan records."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from scanguard.models.analysis_log import LogLevel
from scanguard.models.scan import Architecture, EcuType, ScanStatus


class ScanMetadata(BaseModel):
    """Free-form scan metadata with a couple of well-known keys."""
    priority: Optional[Literal["low", "medium", "high", "critical"]] = None
    notes: Optional[str] = None

    model_config = {"extra": "allow"}


class ScanCreate(BaseModel):
    """Request schema for creating a scan."""
    ecu_name: str = Field(..., min_length=1, max_length=255)
    ecu_type: EcuType = EcuType.OTHER
    version: Optional[str] = Field(None, max_length=100)
    manufacturer: Optional[str] = Field(None, max_length=255)
    platform: Optional[str] = Field(None, max_length=255)
    architecture: Architecture = Architecture.UNKNOWN
    file_name: Optional[str] = Field(None, max_length=500)
    file_size: Optional[int] = Field(None, ge=0)
    file_hash: Optional[str] = Field(None, max_length=64)
    compliance_frameworks: List[str] = Field(default_factory=list)
    deep_analysis: bool = False
    metadata: ScanMetadata = Field(default_factory=ScanMetadata)

    @field_validator("ecu_name")
    @classmethod
    def strip_ecu_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("ecu_name must not be blank")
        return v

    @field_validator("compliance_frameworks")
    @classmethod
    def drop_blank_frameworks(cls, v: List[str]) -> List[str]:
        return [f.strip() for f in v if f and f.strip()]


class ScanResponse(BaseModel):
    """Response schema for a scan."""
    id: str
    ecu_name: str
    ecu_type: EcuType
    version: Optional[str] = None
    manufacturer: Optional[str] = None
    platform: Optional[str] = None
    architecture: Architecture
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_hash: Optional[str] = None
    compliance_frameworks: List[str] = []
    deep_analysis: bool = False
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("scan_metadata", "metadata"),
    )
    status: ScanStatus
    progress: int
    risk_score: Optional[int] = None
    executive_summary: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScanListResponse(BaseModel):
    """Paginated scan list."""
    items: List[ScanResponse]
    total: int
    limit: int
    offset: int


class AnalysisLogResponse(BaseModel):
    """Response schema for a pipeline log entry."""
    id: int
    scan_id: str
    stage: str
    log_level: LogLevel
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


class StaleScanSweepResponse(BaseModel):
    """Result of failing scans that stopped making progress."""
    failed_scan_ids: List[str]
    timeout_minutes: int
