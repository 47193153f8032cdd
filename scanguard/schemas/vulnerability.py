"""Schemas for vulnerabilities and their LLM enrichment."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from scanguard.models.vulnerability import Severity, VulnerabilityStatus


class VulnerabilityEnrichment(BaseModel):
    """
    Optional extension record attached to a vulnerability by the enrichment stage.

    Every field is optional; unknown keys from the model are dropped.
    """
    detailed_explanation: Optional[str] = None
    attack_scenarios: List[str] = Field(default_factory=list)
    automotive_impact: Optional[str] = None
    step_by_step_remediation: List[str] = Field(default_factory=list)
    code_fix_example: Optional[str] = None
    testing_recommendations: List[str] = Field(default_factory=list)
    iso_26262_asil: Optional[str] = None
    iso_21434_cal: Optional[str] = None

    model_config = {"extra": "ignore"}

    @field_validator("attack_scenarios", "step_by_step_remediation", "testing_recommendations", mode="before")
    @classmethod
    def coerce_to_list(cls, v):
        """LLMs return a single string about as often as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        if isinstance(v, list):
            return [item if isinstance(item, str) else str(item) for item in v]
        return v

    @field_validator("detailed_explanation", "automotive_impact", "code_fix_example",
                     "iso_26262_asil", "iso_21434_cal", mode="before")
    @classmethod
    def coerce_to_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, list):
            return "\n".join(str(item) for item in v)
        return str(v)

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class VulnerabilityCreate(BaseModel):
    """A finding produced by an analyzer, before it is stored."""
    severity: Severity
    title: str = Field(..., min_length=1, max_length=500)
    cwe_id: Optional[str] = None
    cve_id: Optional[str] = None
    cvss_score: Optional[float] = Field(None, ge=0.0, le=10.0)
    description: Optional[str] = None
    affected_component: Optional[str] = None
    affected_function: Optional[str] = None
    code_snippet: Optional[str] = None
    line_number: Optional[int] = Field(None, ge=0)
    detection_method: Optional[str] = None
    remediation: Optional[str] = None
    attack_vector: Optional[str] = None
    impact: Optional[str] = None
    llm_enrichment: Optional[VulnerabilityEnrichment] = None


class VulnerabilityResponse(BaseModel):
    """Response schema for a stored vulnerability."""
    id: int
    scan_id: str
    severity: Severity
    title: str
    cwe_id: Optional[str] = None
    cve_id: Optional[str] = None
    cvss_score: Optional[float] = None
    description: Optional[str] = None
    affected_component: Optional[str] = None
    affected_function: Optional[str] = None
    code_snippet: Optional[str] = None
    line_number: Optional[int] = None
    detection_method: Optional[str] = None
    remediation: Optional[str] = None
    attack_vector: Optional[str] = None
    impact: Optional[str] = None
    llm_enrichment: Optional[VulnerabilityEnrichment] = None
    status: VulnerabilityStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VulnerabilityListResponse(BaseModel):
    """Paginated vulnerability list."""
    items: List[VulnerabilityResponse]
    total: int
    limit: int
    offset: int


class VulnerabilityStatusUpdate(BaseModel):
    """Request schema for a reviewer's triage decision."""
    status: VulnerabilityStatus
