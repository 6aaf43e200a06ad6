"""
Ticket Analyzer - Classify service tickets using OpenAI.

This service wraps the OpenAI chat completions API to turn a free-text
ticket description into a priority, category and repair guidance, and
to write short technician briefings for a customer. Analysis is advisory:
any failure is logged and replaced by a fixed default so ticket creation
never depends on the external service.
"""

import json
import logging
from typing import Any, Dict, Optional

from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from crm.models.domain import TicketAnalysis, TicketPriority
from crm.models.workflow import AnalysisResult
from crm.utils.config import settings
from crm.utils.exceptions import ExternalServiceFailure

logger = logging.getLogger(__name__)

DEFAULT_ANALYSIS = AnalysisResult(
    priority=TicketPriority.MEDIUM,
    category="General",
    suggested_action="Dispatch technician for on-site diagnosis.",
    estimated_time="1-2 hours",
    required_parts=["Multimeter", "Standard Toolkit"],
)

SUMMARY_FALLBACK = "Could not generate summary."
SUMMARY_UNAVAILABLE = "Summary unavailable."

ANALYSIS_PROMPT = """You are an expert technical support manager for a security alarm company.
Analyze the following service ticket description for a {system_type} system.
Description: "{description}"

Determine the priority, category of the issue, suggested troubleshooting steps or repair action,
estimated time to fix, and potential parts needed.

Respond with a JSON object with these keys:
- "priority": one of "Low", "Medium", "High", "Critical"
- "category": short issue category
- "suggested_action": repair or troubleshooting steps
- "estimated_time": e.g. "30 mins" or "1-2 hours"
- "required_parts": list of part names"""

SUMMARY_PROMPT = (
    "Summarize the following customer history and current system status into a concise "
    "briefing for a technician. Notes: {notes}. Current Status: {system_status}. "
    "Keep it under 50 words."
)


class TicketAnalyzer:
    """
    Service for AI-assisted ticket triage using OpenAI's API.

    Features:
    - Priority and category classification with JSON output
    - Suggested action, time estimate and parts list
    - Technician briefing summaries
    - Fixed fallback result whenever the API is unavailable
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            api_key: OpenAI API key (defaults to settings.OPENAI_API_KEY)
            model: Chat model to use (defaults to settings.LLM_MODEL)
            client: Pre-built client, mainly for tests
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.LLM_MODEL
        self.timeout = settings.AI_TIMEOUT_SECONDS
        self.enabled = settings.ENABLE_AI_ANALYSIS

        if client is not None:
            self.client = client
        elif self.api_key and self.enabled:
            self.client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        else:
            self.client = None
            logger.warning("TicketAnalyzer running without an OpenAI client; default analysis will be used")

        logger.info(f"Initialized TicketAnalyzer with model={self.model}")

    @property
    def available(self) -> bool:
        return self.client is not None

    def analyze(self, description: str, system_type: Optional[str] = None) -> AnalysisResult:
        """
        Classify a ticket description.

        Args:
            description: Free-text problem report
            system_type: Alarm panel model, used as context for the prompt

        Returns:
            AnalysisResult from the model, or DEFAULT_ANALYSIS on any failure
        """
        try:
            return self._request_analysis(description, system_type or "Generic Alarm System")
        except ExternalServiceFailure as e:
            logger.warning(f"Ticket analysis unavailable, using default: {e}")
            return DEFAULT_ANALYSIS.model_copy(deep=True)

    def summarize_customer(self, notes: str, system_status: str) -> str:
        """
        Write a short technician briefing for a customer.

        Returns:
            The summary text, or a fixed fallback string on failure
        """
        try:
            text = self._complete(
                [{"role": "user", "content": SUMMARY_PROMPT.format(notes=notes, system_status=system_status)}]
            )
        except ExternalServiceFailure as e:
            logger.warning(f"Customer summary unavailable: {e}")
            return SUMMARY_FALLBACK
        return text.strip() or SUMMARY_UNAVAILABLE

    # ------------------------------------------------------------------
    # OpenAI calls
    # ------------------------------------------------------------------

    def _request_analysis(self, description: str, system_type: str) -> AnalysisResult:
        if not description or not description.strip():
            raise ExternalServiceFailure("openai", "Cannot analyze an empty description")

        text = self._complete(
            [
                {"role": "system", "content": "You triage alarm system service tickets. Reply in JSON."},
                {"role": "user", "content": ANALYSIS_PROMPT.format(
                    system_type=system_type, description=description.strip()
                )},
            ],
            response_format={"type": "json_object"},
            temperature=0.2,
        )
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise ExternalServiceFailure("openai", f"Malformed JSON in analysis: {e}") from e
        return self._parse_analysis(payload)

    def _complete(self, messages, **kwargs) -> str:
        if not self.available:
            raise ExternalServiceFailure("openai", "OpenAI API key not configured or AI analysis disabled")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                **kwargs,
            )
        except Exception as e:
            logger.error(f"OpenAI request failed: {e}")
            raise ExternalServiceFailure("openai", str(e)) from e

        if not response.choices:
            raise ExternalServiceFailure("openai", "No response from AI")
        content = response.choices[0].message.content
        if not content:
            raise ExternalServiceFailure("openai", "No response from AI")
        logger.debug(f"AI response: '{content[:80]}...'")
        return content

    def _parse_analysis(self, payload: Dict[str, Any]) -> AnalysisResult:
        if not isinstance(payload, dict):
            raise ExternalServiceFailure("openai", "Analysis is not a JSON object")
        data = {
            "priority": payload.get("priority"),
            "category": payload.get("category"),
            "suggested_action": payload.get("suggested_action", payload.get("suggestedAction")),
            "estimated_time": payload.get("estimated_time", payload.get("estimatedTime")),
            "required_parts": payload.get("required_parts", payload.get("requiredParts", [])),
        }
        try:
            return AnalysisResult.model_validate(data)
        except PydanticValidationError as e:
            raise ExternalServiceFailure("openai", f"Unexpected analysis shape: {e}") from e


def to_ticket_analysis(result: AnalysisResult) -> TicketAnalysis:
    """The guidance part of an analysis, as stored on a ticket"""
    return TicketAnalysis(
        suggested_action=result.suggested_action,
        estimated_time=result.estimated_time,
        required_parts=list(result.required_parts),
    )


# Global singleton instance
_ticket_analyzer: Optional[TicketAnalyzer] = None


def get_ticket_analyzer() -> TicketAnalyzer:
    """
    Get the global ticket analyzer instance.

    Returns:
        TicketAnalyzer instance
    """
    global _ticket_analyzer
    if _ticket_analyzer is None:
        _ticket_analyzer = TicketAnalyzer()
    return _ticket_analyzer


def reset_ticket_analyzer():
    """Reset the global ticket analyzer (useful for testing)."""
    global _ticket_analyzer
    _ticket_analyzer = None
