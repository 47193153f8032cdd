"""Schemas for compliance results."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from scanguard.models.compliance_result import ComplianceStatus


class ComplianceResultCreate(BaseModel):
    """A compliance rule outcome produced by an analyzer."""
    framework: str = Field(..., min_length=1)
    rule_id: str = Field(..., min_length=1)
    rule_description: Optional[str] = None
    status: ComplianceStatus
    details: Optional[str] = None


class ComplianceResultResponse(BaseModel):
    """Response schema for a stored compliance result."""
    id: int
    scan_id: str
    framework: str
    rule_id: str
    rule_description: Optional[str] = None
    status: ComplianceStatus
    details: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class FrameworkSummary(BaseModel):
    """Pass/fail tally for one canonical framework."""
    key: str
    name: str
    total: int
    passed: int
    failed: int
    warnings: int
    pass_rate: int  # 0-100, 0 when there are no results


class ComplianceSummaryResponse(BaseModel):
    """Per-framework compliance summary for a scan."""
    scan_id: str
    frameworks: List[FrameworkSummary]
    overall_pass_rate: int
    unmatched_results: int
