"""Schemas for starting an analysis and for analyzer output."""
import base64
import binascii
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from scanguard.models.vulnerability import Severity
from scanguard.schemas.compliance import ComplianceResultCreate
from scanguard.schemas.sbom import SbomComponentCreate
from scanguard.schemas.vulnerability import VulnerabilityCreate


class BinarySource(BaseModel):
    """Firmware image handed over inline as base64."""
    kind: Literal["binary"] = "binary"
    file_name: str = Field(..., min_length=1)
    content_base64: str = Field(..., repr=False)

    @field_validator("content_base64")
    @classmethod
    def must_be_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("content_base64 is not valid base64")
        return v

    def decode(self) -> bytes:
        return base64.b64decode(self.content_base64)


class RepositorySource(BaseModel):
    """Git repository coordinates."""
    kind: Literal["repository"] = "repository"
    url: str = Field(..., min_length=1)
    branch: Optional[str] = None
    provider: Literal["github"] = "github"
    access_token: Optional[str] = Field(None, repr=False)


AnalysisSource = Annotated[Union[BinarySource, RepositorySource], Field(discriminator="kind")]


class AnalysisRequest(BaseModel):
    """Request body for starting the pipeline on a queued scan."""
    source: AnalysisSource


class AnalysisAck(BaseModel):
    """Immediate acknowledgement; the pipeline keeps running in the background."""
    scan_id: str
    accepted: bool = True
    source_kind: str
    message: str


class PiiFinding(BaseModel):
    """Personal data spotted in firmware (e-mail addresses, phone numbers, device ids)."""
    type: str = "other"
    value: Optional[str] = None
    location: Optional[str] = None  # "file:line"
    severity: Severity = Severity.MEDIUM
    context: Optional[str] = None
    remediation: Optional[str] = None


class SecretFinding(BaseModel):
    """Hard-coded credential or key material. Values arrive masked."""
    type: str = "hardcoded_credential"
    value: Optional[str] = None
    location: Optional[str] = None  # "file:line"
    severity: Severity = Severity.CRITICAL
    context: Optional[str] = None
    remediation: Optional[str] = None


class AnalysisResult(BaseModel):
    """Everything an analyzer returns for one scan, held in memory until the enriching stage."""
    vulnerabilities: List[VulnerabilityCreate] = Field(default_factory=list)
    compliance_results: List[ComplianceResultCreate] = Field(default_factory=list)
    sbom_components: List[SbomComponentCreate] = Field(default_factory=list)
    pii_findings: List[PiiFinding] = Field(default_factory=list)
    secret_findings: List[SecretFinding] = Field(default_factory=list)
    executive_summary: Optional[str] = None
    risk_score: Optional[int] = None
