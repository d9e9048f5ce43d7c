"""
JSON Utilities for LLM Response Parsing.

The tool-detection contract requires a bare JSON object. Markdown fences,
leading prose or trailing commentary are contract violations, so this module
parses strictly and never tries to repair or extract embedded JSON.
"""

import json
from typing import Any, Dict

from src.common.error_handling import MalformedResponseError

# Keep error messages short; LLM output can be long
_PREVIEW_CHARS = 120


def _preview(text: str) -> str:
    text = text.replace("\n", " ")
    if len(text) > _PREVIEW_CHARS:
        return text[:_PREVIEW_CHARS] + "..."
    return text


def parse_strict_json_object(text: str) -> Dict[str, Any]:
    """
    Parse an LLM response that must be exactly one JSON object.

    Surrounding whitespace is allowed. Anything else (code fences,
    explanations, arrays, multiple objects) raises.

    Args:
        text: Raw LLM response text

    Returns:
        Parsed dictionary

    Raises:
        MalformedResponseError: If the text is not a bare JSON object

    Example:
        >>> parse_strict_json_object('{"uses_tool": false}')
        {'uses_tool': False}
    """
    if text is None or not text.strip():
        raise MalformedResponseError("Empty response: no JSON content to parse", text)

    stripped = text.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        raise MalformedResponseError(
            f"Response is not a bare JSON object: {_preview(stripped)}", text
        )

    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"Invalid JSON at position {e.pos}: {_preview(stripped)}", text
        ) from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"Expected JSON object, got {type(parsed).__name__}", text
        )

    return parsed
