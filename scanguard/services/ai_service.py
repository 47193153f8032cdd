"""
LLM gateway client for firmware analysis and vulnerability enrichment.

Talks to any OpenAI-compatible chat-completions endpoint.
"""
import json
import logging
from typing import Any, Dict, Optional

from openai import OpenAI, APIStatusError

from scanguard.core.config import settings
from scanguard.core.exceptions import AnalyzerError
from scanguard.schemas.vulnerability import VulnerabilityCreate, VulnerabilityEnrichment

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = """You are an automotive ECU security analyst. You know embedded vulnerability classes
(memory corruption, race conditions, unsafe flash writes), CAN/LIN/FlexRay bus security,
hardcoded credentials and key material, personal data in firmware, and supply-chain components.

Check compliance against current framework versions: MISRA C:2023, ISO/SAE 21434:2021,
ISO 26262:2018, AUTOSAR R22-11, UNECE WP.29 R155 and R156.

Always answer with a single valid JSON object and nothing else."""

DEFAULT_FRAMEWORKS = "MISRA C:2023, ISO 21434:2021, ISO 26262:2018"


def _parse_json(content: Optional[str]) -> Dict[str, Any]:
    """Parse a JSON object from a model reply, tolerating markdown fences around it."""
    if not content:
        raise ValueError("Empty response from LLM gateway")
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        json_start = content.find("{")
        json_end = content.rfind("}") + 1
        if json_start < 0 or json_end <= json_start:
            raise ValueError("LLM response did not contain a JSON object")
        data = json.loads(content[json_start:json_end])
    if not isinstance(data, dict):
        raise ValueError("LLM response JSON is not an object")
    return data


class AIService:
    """Service for LLM-backed analysis and enrichment."""

    def __init__(self):
        self._client = None

    @property
    def client(self):
        """Lazy-load the OpenAI client."""
        if self._client is None and settings.is_openai_available():
            try:
                kwargs = {"api_key": settings.OPENAI_API_KEY, "timeout": settings.HTTP_TIMEOUT_SECONDS * 4}
                if settings.OPENAI_BASE_URL:
                    kwargs["base_url"] = settings.OPENAI_BASE_URL
                self._client = OpenAI(**kwargs)
            except Exception as e:
                logger.error(f"Failed to initialize LLM gateway client: {e}")
                return None
        return self._client

    def is_available(self) -> bool:
        """Check if the LLM gateway is configured and reachable from this process."""
        return settings.is_openai_available() and self.client is not None

    def _complete(self, messages, temperature: float) -> str:
        try:
            response = self.client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=messages,
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except APIStatusError as e:
            if e.status_code == 429:
                raise AnalyzerError("LLM gateway rate limit exceeded, please try again later") from e
            if e.status_code == 402:
                raise AnalyzerError("LLM gateway credits exhausted, please add funds to the workspace") from e
            raise AnalyzerError(f"LLM gateway error ({e.status_code}): {e.message}") from e
        return response.choices[0].message.content

    def analyze_firmware(self, metadata: Dict[str, Any], preview: str, is_text: bool) -> Dict[str, Any]:
        """
        Ask the gateway for a full analysis of one firmware image or source bundle.

        Args:
            metadata: ECU details (ecu_name, ecu_type, version, manufacturer, architecture,
                file_name, compliance_frameworks)
            preview: Decoded source text or hex dump of the binary header
            is_text: Whether the preview is source code

        Returns:
            Raw JSON object from the model (keys may be camelCase or snake_case)

        Raises:
            AnalyzerError: gateway unavailable, rate limited, out of credits, or bad reply
        """
        if not self.is_available():
            raise AnalyzerError("LLM gateway API key not configured")

        frameworks = ", ".join(metadata.get("compliance_frameworks") or []) or DEFAULT_FRAMEWORKS
        kind = "source file" if is_text else "binary"
        prompt = f"""Analyze this {metadata.get('architecture', 'Unknown')} ECU {kind} for security vulnerabilities.

ECU Details:
- Name: {metadata.get('ecu_name')}
- Type: {metadata.get('ecu_type')}
- Version: {metadata.get('version') or 'Unknown'}
- Manufacturer: {metadata.get('manufacturer') or 'Unknown'}
- Architecture: {metadata.get('architecture')}
- File: {metadata.get('file_name')}

{'Source Code Content:' if is_text else 'Binary Header (hex):'}
{preview}

Compliance frameworks to check: {frameworks}

Instructions:
1. Report vulnerabilities with line numbers and code snippets taken from the content shown.
2. Report personal data (emails, phone numbers, IP addresses, names, device ids) as pii_findings.
3. Report API keys, passwords, tokens, private keys and certificates as secret_findings, masking values.
4. List the third-party components you can identify (includes, linked libraries) with versions and known CVEs.

Return JSON with keys:
"vulnerabilities": [{{"cve_id", "cwe_id", "severity" (critical|high|medium|low|info), "cvss_score" (0-10),
  "title", "description", "affected_component", "affected_function", "code_snippet", "line_number",
  "detection_method", "remediation", "attack_vector", "impact"}}],
"compliance_results": [{{"framework", "rule_id", "rule_description", "status" (pass|fail|warning), "details"}}],
"sbom_components": [{{"component_name", "version", "license", "source_file", "vulnerabilities": [CVE ids]}}],
"pii_findings": [{{"type", "value", "location" (file:line), "severity", "context", "remediation"}}],
"secret_findings": [{{"type", "value", "location" (file:line), "severity", "context", "remediation"}}],
"executive_summary": "2-3 paragraph summary",
"risk_score": 0-100"""

        content = self._complete(
            [
                {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.2,
        )
        try:
            return _parse_json(content)
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning(f"Unparseable analysis reply for {metadata.get('file_name')}: {e}")
            raise AnalyzerError("Failed to parse LLM response as JSON") from e

    def enrich_vulnerability(self, vuln: VulnerabilityCreate) -> Optional[VulnerabilityEnrichment]:
        """
        Generate remediation guidance for one finding.

        Enrichment is nice-to-have: any failure returns None and the finding
        is stored without it.
        """
        if not self.is_available():
            return None

        prompt = f"""For this automotive ECU vulnerability, provide detailed remediation guidance.

Vulnerability: {vuln.title}
CVE: {vuln.cve_id or 'N/A'}
CWE: {vuln.cwe_id or 'N/A'}
Severity: {vuln.severity.value}
Description: {vuln.description or ''}
Affected Component: {vuln.affected_component or 'Unknown'}

Return JSON with:
"detailed_explanation": in-depth technical explanation,
"attack_scenarios": list of concrete attack scenarios,
"automotive_impact": impact on vehicle safety and security,
"step_by_step_remediation": ordered list of fix steps,
"code_fix_example": fixed code if applicable,
"testing_recommendations": list of ways to verify the fix,
"iso_26262_asil": ASIL implication (A/B/C/D),
"iso_21434_cal": cybersecurity assurance level (CAL 1-4)"""

        try:
            content = self._complete(
                [
                    {"role": "system", "content": "You are an automotive cybersecurity expert. Always return valid JSON."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
            )
            return VulnerabilityEnrichment.model_validate(_parse_json(content))
        except Exception as e:
            logger.error(f"Enrichment failed for '{vuln.title}': {e}", exc_info=True)
            return None


ai_service = AIService()
