import json
import logging
import re
from typing import Any, Dict

from .errors import parse_error

logger = logging.getLogger("docintel.parser")

_OPENING_FENCE = re.compile(r"^```(?:json)?", re.IGNORECASE)
_CLOSING_FENCE = "```"


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"non-standard JSON constant {name}")


def strip_code_fences(text: str) -> str:
    """
    Remove Markdown code-block delimiters a chat model may wrap around JSON:
      - trim surrounding whitespace
      - drop a leading ``` or ```json fence
      - drop a trailing ``` fence
      - trim again
    Text without fences comes back trimmed and otherwise untouched.
    """
    cleaned = text.strip()
    cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
    if cleaned.endswith(_CLOSING_FENCE):
        cleaned = cleaned[: -len(_CLOSING_FENCE)]
    return cleaned.strip()


def parse_model_output(content: str) -> Dict[str, Any]:
    """
    Recover the JSON object from a provider completion.

    Raises a PARSE_ERROR ExtractionFailure carrying the original, untouched
    content when the cleaned text is not a JSON object.
    """
    cleaned = strip_code_fences(content)
    try:
        parsed = json.loads(cleaned, parse_constant=_reject_constant)
    except ValueError as ex:
        logger.error("Failed to parse provider response (%s). Content: %s", ex, content)
        raise parse_error(content) from ex
    if not isinstance(parsed, dict):
        logger.error(
            "Provider response is JSON %s, expected an object. Content: %s",
            type(parsed).__name__,
            content,
        )
        raise parse_error(content)
    return parsed
