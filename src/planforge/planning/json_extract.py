"""
JSON payload extraction from free-text completion replies.

Both the plan contract and the step-result contract arrive as the first
extractable JSON block of an otherwise free-text reply. Strategies are tried
in order:

1. a fenced ```json block
2. any fenced ``` block
3. the span from the first ``{`` to the last ``}``
"""

import json
import re
from typing import Any, Dict

from planforge.agents.errors import JsonExtractionError

_JSON_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_ANY_FENCE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)


def extract_json_block(text: str) -> str:
    """Return the raw JSON text found in *text*.

    Raises:
        JsonExtractionError: none of the strategies found a candidate.
    """
    if not isinstance(text, str) or not text:
        raise JsonExtractionError(
            "Could not extract JSON block from response", raw_output=text
        )

    match = _JSON_FENCE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    match = _ANY_FENCE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    start = text.find("{")
    if start != -1:
        end = text.rfind("}")
        if end > start:
            return text[start : end + 1].strip()

    raise JsonExtractionError(
        "Could not extract JSON block from response", raw_output=text
    )


def parse_json_object(text: str) -> Dict[str, Any]:
    """Extract and decode the JSON object contained in *text*."""
    json_str = extract_json_block(text)
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise JsonExtractionError(
            f"Failed to parse JSON: {e.msg} (line {e.lineno}, column {e.colno})",
            raw_output=text,
        ) from e

    if not isinstance(data, dict):
        raise JsonExtractionError(
            f"Expected a JSON object, got {type(data).__name__}", raw_output=text
        )
    return data
