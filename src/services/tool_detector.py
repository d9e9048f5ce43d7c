"""
Tool Detector Service

Asks a chat model whether a job posting shows that the hiring company uses
Outreach.io or SalesLoft. The model must answer with a bare JSON object;
anything else is a malformed response.

The prompt's key job is separating "Outreach" the product from "outreach"
the everyday sales activity. Generic uses must never produce a detection,
since one false positive silently pollutes the company registry.
"""

import logging
from typing import Any, Optional

import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, ValidationError, field_validator
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.common.config import Config
from src.common.error_handling import (
    CollaboratorError,
    MalformedResponseError,
    RejectedInputError,
)
from src.common.json_utils import parse_strict_json_object
from src.common.llm_factory import create_llm
from src.common.types import Confidence, SignalType, Tool

logger = logging.getLogger(__name__)


TOOL_DETECTION_SYSTEM = """You are an expert at analyzing job descriptions to identify whether the hiring company uses Outreach.io or SalesLoft.

IMPORTANT: Distinguish between "Outreach" (the product) and "outreach" (general sales activity).

Valid indicators for Outreach.io:
- "Outreach.io"
- "Outreach platform"
- "Outreach sequences"
- Capitalized "Outreach" listed alongside other sales tools (e.g., "Salesforce, Outreach, Gong")
- "experience with Outreach"

Valid indicators for SalesLoft:
- "SalesLoft"
- "Salesloft"
- "Sales Loft"
- "experience with SalesLoft"

NOT valid (generic sales terms, never a detection):
- "sales outreach"
- "cold outreach"
- "outreach efforts"
- "customer outreach"

Field values:
- tool_detected: "Outreach.io", "SalesLoft", "Both" or "None"
- signal_type: "explicit_mention", "integration_requirement", "process_indicator" or "none"
- confidence: "high", "medium" or "low"
- context: the exact quote that mentions the tool ("" when none)

You must respond with ONLY valid JSON. No explanation. No markdown. Just the JSON object:

{"uses_tool": true, "tool_detected": "Outreach.io", "signal_type": "explicit_mention", "context": "exact quote mentioning the tool", "confidence": "high"}"""

TOOL_DETECTION_USER = """Company: {company}
Job Title: {title}
Job Description:
{description}"""


_TOOL_ALIASES = {
    "toola": Tool.OUTREACH,
    "outreach": Tool.OUTREACH,
    "outreachio": Tool.OUTREACH,
    "toolb": Tool.SALESLOFT,
    "salesloft": Tool.SALESLOFT,
    "both": Tool.BOTH,
    "none": Tool.NONE,
    "": Tool.NONE,
}

_SIGNAL_ALIASES = {
    "explicit": SignalType.EXPLICIT_MENTION,
    "mentioned": SignalType.EXPLICIT_MENTION,
    "required": SignalType.EXPLICIT_MENTION,
    "preferred": SignalType.EXPLICIT_MENTION,
    "integration": SignalType.INTEGRATION_REQUIREMENT,
    "process": SignalType.PROCESS_INDICATOR,
}


def canonical_tool(value: Any) -> Tool:
    """
    Map the model's tool label to the Tool enum.

    Accepts ToolA/ToolB and common spellings ("Outreach", "Sales Loft").

    Raises:
        ValueError: For labels outside the closed enumeration
    """
    if value is None:
        return Tool.NONE
    if isinstance(value, Tool):
        return value
    key = "".join(ch for ch in str(value).lower() if ch.isalnum())
    if key in _TOOL_ALIASES:
        return _TOOL_ALIASES[key]
    raise ValueError(f"unknown tool label: {value!r}")


class ToolJudgment(BaseModel):
    """Validated tool-detection judgment returned by the model."""

    uses_tool: bool
    tool_detected: Tool
    signal_type: SignalType = SignalType.NONE
    context: str = ""
    confidence: Confidence = Confidence.LOW

    @field_validator("tool_detected", mode="before")
    @classmethod
    def _canonical_tool(cls, value: Any) -> Tool:
        return canonical_tool(value)

    @field_validator("signal_type", mode="before")
    @classmethod
    def _canonical_signal(cls, value: Any) -> Any:
        if value is None:
            return SignalType.NONE
        if isinstance(value, SignalType):
            return value
        text = str(value).strip().lower()
        return _SIGNAL_ALIASES.get(text, text)

    @field_validator("confidence", mode="before")
    @classmethod
    def _lower_confidence(cls, value: Any) -> Any:
        if value is None:
            return Confidence.LOW
        if isinstance(value, Confidence):
            return value
        return str(value).strip().lower()

    @field_validator("context", mode="before")
    @classmethod
    def _context_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def is_detection(self) -> bool:
        """True only when the model asserts usage of a concrete tool."""
        return self.uses_tool and self.tool_detected != Tool.NONE


class ToolDetector:
    """
    Tool-detection collaborator backed by a LangChain chat model.

    Errors:
    - Rate limits are retried with exponential backoff (3 attempts)
    - A 400/422 for this posting raises RejectedInputError (never retried)
    - Any other API failure raises CollaboratorError
    - Non-JSON or schema-violating output raises MalformedResponseError
    """

    def __init__(
        self,
        llm: Optional[BaseChatModel] = None,
        description_chars: Optional[int] = None,
    ):
        """
        Args:
            llm: Chat model (defaults to create_llm())
            description_chars: Description prefix length sent to the model
        """
        self._llm = llm
        self.description_chars = description_chars or Config.DESCRIPTION_PREFIX_CHARS

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = create_llm()
        return self._llm

    def build_messages(self, company: str, title: str, description: str):
        """Build the system + user messages for one posting."""
        user_message = TOOL_DETECTION_USER.format(
            company=company or "Unknown",
            title=title or "Unknown",
            description=(description or "")[: self.description_chars],
        )
        return [
            SystemMessage(content=TOOL_DETECTION_SYSTEM),
            HumanMessage(content=user_message),
        ]

    @retry(
        retry=retry_if_exception_type(openai.RateLimitError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _invoke_with_retry(self, messages) -> str:
        response = self.llm.invoke(messages)
        content = response.content
        if not isinstance(content, str):
            raise MalformedResponseError(
                f"Expected text content, got {type(content).__name__}"
            )
        return content

    def detect(self, company: str, title: str, description: str) -> ToolJudgment:
        """
        Judge one posting.

        Args:
            company: Company name
            title: Job title
            description: Full description (truncated to the prefix length)

        Returns:
            Validated ToolJudgment

        Raises:
            CollaboratorError: If the model API is unavailable
            RejectedInputError: If the model API refuses this posting
            MalformedResponseError: If the response breaks the JSON contract
        """
        messages = self.build_messages(company, title, description)

        try:
            content = self._invoke_with_retry(messages)
        except (openai.BadRequestError, openai.UnprocessableEntityError) as e:
            raise RejectedInputError("openai", f"{type(e).__name__}: {e}") from e
        except openai.APIError as e:
            raise CollaboratorError("openai", f"{type(e).__name__}: {e}") from e

        data = parse_strict_json_object(content)
        try:
            judgment = ToolJudgment.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(
                f"Response failed validation: {e.error_count()} error(s)", content
            ) from e

        logger.debug(
            f"Judgment for {company} - {title}: "
            f"uses_tool={judgment.uses_tool}, tool={judgment.tool_detected.value}"
        )
        return judgment
