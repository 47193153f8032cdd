"""
Tests for AI service with mocked OpenAI client.
"""
import httpx
import pytest
from unittest.mock import MagicMock, patch
from openai import APIStatusError

from scanguard.core.config import settings
from scanguard.core.exceptions import AnalyzerError
from scanguard.schemas.vulnerability import VulnerabilityCreate
from scanguard.services.ai_service import AIService, _parse_json

METADATA = {
    "ecu_name": "Infotainment Head Unit",
    "ecu_type": "Infotainment",
    "architecture": "ARM",
    "file_name": "ihu.bin",
    "compliance_frameworks": ["UNECE R155"],
}


@pytest.fixture
def mock_openai_client():
    """Mock OpenAI client."""
    with patch("scanguard.services.ai_service.OpenAI") as mock_openai:
        mock_client = MagicMock()
        mock_openai.return_value = mock_client
        yield mock_client


@pytest.fixture
def ai_service():
    """Create AI service instance."""
    return AIService()


@pytest.fixture
def openai_key():
    with patch.object(settings, "OPENAI_API_KEY", "test-key"):
        yield


def _reply(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def _status_error(code):
    request = httpx.Request("POST", "https://gateway.example/v1/chat/completions")
    response = httpx.Response(code, request=request)
    return APIStatusError(f"Error code: {code}", response=response, body=None)


class TestAIService:
    """Test AI service functionality."""

    def test_is_available_without_openai_key(self, ai_service):
        assert ai_service.is_available() is False

    def test_is_available_with_openai_key(self, ai_service, mock_openai_client, openai_key):
        assert ai_service.is_available() is True

    def test_analyze_firmware_returns_parsed_json(self, ai_service, mock_openai_client, openai_key):
        mock_openai_client.chat.completions.create.return_value = _reply(
            '{"vulnerabilities": [], "riskScore": 12}'
        )

        result = ai_service.analyze_firmware(METADATA, "7f 45 4c 46", is_text=False)

        assert result == {"vulnerabilities": [], "riskScore": 12}
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == settings.OPENAI_MODEL
        assert kwargs["response_format"] == {"type": "json_object"}
        prompt = kwargs["messages"][1]["content"]
        assert "Binary Header (hex):" in prompt
        assert "UNECE R155" in prompt

    def test_analyze_firmware_without_key(self, ai_service):
        with pytest.raises(AnalyzerError, match="not configured"):
            ai_service.analyze_firmware(METADATA, "", is_text=True)

    @pytest.mark.parametrize("code,message", [
        (429, "rate limit exceeded"),
        (402, "credits exhausted"),
        (500, "LLM gateway error \\(500\\)"),
    ])
    def test_analyze_firmware_gateway_errors(self, ai_service, mock_openai_client, openai_key, code, message):
        mock_openai_client.chat.completions.create.side_effect = _status_error(code)

        with pytest.raises(AnalyzerError, match=message):
            ai_service.analyze_firmware(METADATA, "", is_text=True)

    def test_analyze_firmware_unparseable_reply(self, ai_service, mock_openai_client, openai_key):
        mock_openai_client.chat.completions.create.return_value = _reply("I could not analyze this file.")

        with pytest.raises(AnalyzerError, match="Failed to parse"):
            ai_service.analyze_firmware(METADATA, "", is_text=True)

    def test_enrich_vulnerability_success(self, ai_service, mock_openai_client, openai_key):
        mock_openai_client.chat.completions.create.return_value = _reply(
            '{"detailed_explanation": "Overflow", "attack_scenarios": "Malicious CAN frame", '
            '"step_by_step_remediation": ["Bound the copy", "Add fuzzing"], "iso_26262_asil": "ASIL C", '
            '"unexpected": true}'
        )

        enrichment = ai_service.enrich_vulnerability(
            VulnerabilityCreate(severity="critical", title="CAN overflow", cwe_id="CWE-119")
        )

        assert enrichment.detailed_explanation == "Overflow"
        assert enrichment.attack_scenarios == ["Malicious CAN frame"]
        assert enrichment.step_by_step_remediation == ["Bound the copy", "Add fuzzing"]
        assert enrichment.iso_26262_asil == "ASIL C"

    def test_enrich_vulnerability_handles_errors(self, ai_service, mock_openai_client, openai_key):
        mock_openai_client.chat.completions.create.side_effect = Exception("API Error")

        assert ai_service.enrich_vulnerability(VulnerabilityCreate(severity="high", title="x")) is None

    def test_enrich_vulnerability_without_key(self, ai_service):
        assert ai_service.enrich_vulnerability(VulnerabilityCreate(severity="high", title="x")) is None


def test_parse_json_strips_markdown_fences():
    assert _parse_json('```json\n{"a": 1}\n```') == {"a": 1}


def test_parse_json_rejects_non_objects():
    with pytest.raises(ValueError):
        _parse_json("[1, 2]")
    with pytest.raises(ValueError):
        _parse_json("")
