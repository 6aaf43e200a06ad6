"""
Ticket analyzer tests

OpenAI is never called; a MagicMock client returns canned completions.
"""

from unittest.mock import MagicMock, patch

import pytest

from crm.models import TicketPriority
from crm.services import ticket_analyzer as analyzer_module
from crm.services.ticket_analyzer import (
    DEFAULT_ANALYSIS,
    SUMMARY_FALLBACK,
    SUMMARY_UNAVAILABLE,
    TicketAnalyzer,
    get_ticket_analyzer,
    reset_ticket_analyzer,
    to_ticket_analysis,
)
from crm.utils.config import settings


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def analyzer(client):
    return TicketAnalyzer(api_key="test-key", model="gpt-4o-mini", client=client)


class TestAnalyze:
    """Test ticket classification"""

    def test_parses_json_response(self, analyzer, client, make_chat_response):
        client.chat.completions.create.return_value = make_chat_response({
            "priority": "High",
            "category": "Sensor",
            "suggested_action": "Realign the door contact magnet.",
            "estimated_time": "45 mins",
            "required_parts": ["Door contact"],
        })

        result = analyzer.analyze("Zone 5 shows open", "Honeywell Vista 128BPT")

        assert result.priority == TicketPriority.HIGH
        assert result.category == "Sensor"
        assert result.required_parts == ["Door contact"]

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "Honeywell Vista 128BPT" in kwargs["messages"][-1]["content"]

    def test_accepts_camel_case_keys(self, analyzer, client, make_chat_response):
        client.chat.completions.create.return_value = make_chat_response({
            "priority": "Low",
            "category": "General",
            "suggestedAction": "Replace battery.",
            "estimatedTime": "30 mins",
            "requiredParts": ["12V 7Ah Battery"],
        })

        result = analyzer.analyze("Low battery beeping")

        assert result.suggested_action == "Replace battery."
        assert result.required_parts == ["12V 7Ah Battery"]

    def test_generic_system_when_type_unknown(self, analyzer, client, make_chat_response):
        client.chat.completions.create.return_value = make_chat_response({
            "priority": "Low", "category": "General",
            "suggested_action": "Check", "estimated_time": "30 mins",
        })

        analyzer.analyze("Beeping")

        prompt = client.chat.completions.create.call_args.kwargs["messages"][-1]["content"]
        assert "Generic Alarm System" in prompt

    def test_api_error_falls_back(self, analyzer, client):
        client.chat.completions.create.side_effect = RuntimeError("connection reset")

        result = analyzer.analyze("Panel offline")

        assert result == DEFAULT_ANALYSIS
        assert result.priority == TicketPriority.MEDIUM
        assert result.required_parts == ["Multimeter", "Standard Toolkit"]

    @pytest.mark.parametrize("content", [
        "not json at all",
        '{"priority": "Urgent", "category": "x", "suggested_action": "y", "estimated_time": "z"}',
        '["a", "list"]',
        "",
    ])
    def test_bad_responses_fall_back(self, analyzer, client, make_chat_response, content):
        client.chat.completions.create.return_value = make_chat_response(content)

        assert analyzer.analyze("Panel offline") == DEFAULT_ANALYSIS

    def test_empty_description_skips_call(self, analyzer, client):
        assert analyzer.analyze("   ") == DEFAULT_ANALYSIS
        client.chat.completions.create.assert_not_called()

    def test_fallback_is_a_copy(self, analyzer, client):
        client.chat.completions.create.side_effect = RuntimeError("down")

        result = analyzer.analyze("Panel offline")
        result.required_parts.append("Ladder")

        assert DEFAULT_ANALYSIS.required_parts == ["Multimeter", "Standard Toolkit"]

    def test_to_ticket_analysis(self):
        analysis = to_ticket_analysis(DEFAULT_ANALYSIS)

        assert analysis.suggested_action == DEFAULT_ANALYSIS.suggested_action
        assert analysis.required_parts == DEFAULT_ANALYSIS.required_parts


class TestSummaries:
    """Test technician briefings"""

    def test_summary_text(self, analyzer, client, make_chat_response):
        client.chat.completions.create.return_value = make_chat_response("  Check Zone 3 rear door.  ")

        assert analyzer.summarize_customer("False alarms on Zone 3", "Trouble") == "Check Zone 3 rear door."

    def test_blank_summary(self, analyzer, client, make_chat_response):
        client.chat.completions.create.return_value = make_chat_response("   ")

        assert analyzer.summarize_customer("Notes", "Armed Stay") == SUMMARY_UNAVAILABLE

    def test_summary_failure(self, analyzer, client):
        client.chat.completions.create.side_effect = RuntimeError("timeout")

        assert analyzer.summarize_customer("Notes", "Armed Stay") == SUMMARY_FALLBACK


class TestConfiguration:
    """Test client construction from settings"""

    def test_no_api_key_means_no_client(self):
        with patch.object(settings, "OPENAI_API_KEY", None):
            analyzer = TicketAnalyzer()

        assert not analyzer.available
        assert analyzer.analyze("Panel offline") == DEFAULT_ANALYSIS

    def test_disabled_analysis(self):
        with patch.object(settings, "ENABLE_AI_ANALYSIS", False):
            analyzer = TicketAnalyzer(api_key="test-key")

        assert not analyzer.available

    def test_builds_openai_client(self):
        with patch.object(analyzer_module, "OpenAI") as openai_cls:
            analyzer = TicketAnalyzer(api_key="test-key")

        openai_cls.assert_called_once_with(api_key="test-key", timeout=settings.AI_TIMEOUT_SECONDS)
        assert analyzer.client is openai_cls.return_value

    def test_global_instance(self):
        reset_ticket_analyzer()
        try:
            with patch.object(settings, "OPENAI_API_KEY", None):
                first = get_ticket_analyzer()
            assert get_ticket_analyzer() is first
        finally:
            reset_ticket_analyzer()
