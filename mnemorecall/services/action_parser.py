"""
Parsing of model output into retrieval actions.

Three tiers, first success wins:
1. A fenced ```json block
2. A bare JSON object (first "{" to last "}")
3. UnparsedAction carrying the raw text

Parsing never raises.
"""

import json
import re
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from mnemorecall.models.actions import ParsedAction, RetrievalAction, UnparsedAction
from mnemorecall.utils.logger import get_logger

logger = get_logger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)

_action_adapter: TypeAdapter = TypeAdapter(ParsedAction)


def _to_action(payload: Any) -> RetrievalAction | None:
    """Validate a decoded {"type", "params", "reasoning"} object; None if invalid."""
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        return None

    params = payload.get("params")
    data = dict(params) if isinstance(params, dict) else {}
    data["type"] = payload["type"]
    if payload.get("reasoning") is not None:
        data["reasoning"] = str(payload["reasoning"])

    if data["type"] == "answer" and "value" in data and not isinstance(data["value"], str):
        data["value"] = json.dumps(data["value"])

    try:
        return _action_adapter.validate_python(data)
    except PydanticValidationError as e:
        logger.debug(f"Rejected action payload: {e.error_count()} validation errors")
        return None


def _decode(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def parse_action(text: str) -> RetrievalAction:
    """
    Parse one model response into an action.

    Args:
        text: Raw model output

    Returns:
        A typed action, or UnparsedAction(raw_text=text) when nothing valid was found
    """
    fenced = _FENCED_JSON.search(text)
    if fenced:
        action = _to_action(_decode(fenced.group(1)))
        if action is not None:
            return action

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        action = _to_action(_decode(text[start : end + 1]))
        if action is not None:
            return action

    return UnparsedAction(raw_text=text, reasoning="Could not parse action JSON")
