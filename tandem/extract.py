"""
Plan extraction from tool-call parts.

Providers tag the same logical tool call in different ways. Every known
representation is one variant of ``ToolPartVariant``; ``classify_tool_part``
picks the variant and exactly one decoder turns it into a canonical
``ToolCallPart``. Anything unrecognised falls into ``UNKNOWN``.
"""

from collections.abc import Callable, Sequence
from enum import Enum
import json
import logging
from typing import Any

from ._types import (
    ContentPart,
    NoPlan,
    Plan,
    TextPart,
    ToDoItem,
    TodoDetails,
    TodoValidation,
    ToolCallPart,
    ToolResultPart,
)
from .exceptions import ToolPayloadError

logger = logging.getLogger(__name__)

PLAN_TOOL_NAME = "progressive_todos"


class ToolPartVariant(str, Enum):
    """Known tool-call representations."""

    CANONICAL = "canonical"
    AI_SDK_STATIC = "ai_sdk_static"
    AI_SDK_INVOCATION = "ai_sdk_invocation"
    OPENAI_FUNCTION = "openai_function"
    ANTHROPIC_TOOL_USE = "anthropic_tool_use"
    UNKNOWN = "unknown"


# Part types that share the "tool-" prefix but are not static tool parts.
_RESERVED_TOOL_TYPES = {"tool-call", "tool-result", "tool-invocation"}


def classify_tool_part(part: Any) -> ToolPartVariant:
    """Decide which representation a part uses."""
    if isinstance(part, ToolCallPart):
        return ToolPartVariant.CANONICAL
    if isinstance(part, (TextPart, ToolResultPart)) or not isinstance(part, dict):
        return ToolPartVariant.UNKNOWN

    part_type = part.get("type")
    if not isinstance(part_type, str):
        return ToolPartVariant.UNKNOWN
    if part_type == "tool-call":
        return ToolPartVariant.CANONICAL
    if part_type == "tool-invocation" and isinstance(part.get("toolInvocation"), dict):
        return ToolPartVariant.AI_SDK_INVOCATION
    if part_type == "function" and isinstance(part.get("function"), dict):
        return ToolPartVariant.OPENAI_FUNCTION
    if part_type == "tool_use" and isinstance(part.get("name"), str):
        return ToolPartVariant.ANTHROPIC_TOOL_USE
    if part_type.startswith("tool-") and part_type not in _RESERVED_TOOL_TYPES:
        return ToolPartVariant.AI_SDK_STATIC
    return ToolPartVariant.UNKNOWN


def _decode_canonical(part: Any) -> ToolCallPart | None:
    if isinstance(part, ToolCallPart):
        return part
    return ToolCallPart(name=str(part.get("name", "")), payload=part.get("payload"))


def _decode_ai_sdk_static(part: dict[str, Any]) -> ToolCallPart | None:
    # {"type": "tool-<name>", "toolCallId": ..., "state": ..., "input": {...}}
    name = part["type"][len("tool-") :]
    payload = part.get("input", part.get("args"))
    return ToolCallPart(name=name, payload=payload)


def _decode_ai_sdk_invocation(part: dict[str, Any]) -> ToolCallPart | None:
    invocation = part["toolInvocation"]
    return ToolCallPart(name=str(invocation.get("toolName", "")), payload=invocation.get("args"))


def _decode_openai_function(part: dict[str, Any]) -> ToolCallPart | None:
    function = part["function"]
    return ToolCallPart(name=str(function.get("name", "")), payload=function.get("arguments"))


def _decode_anthropic_tool_use(part: dict[str, Any]) -> ToolCallPart | None:
    return ToolCallPart(name=part["name"], payload=part.get("input"))


def _decode_unknown(part: Any) -> ToolCallPart | None:
    return None


_DECODERS: dict[ToolPartVariant, Callable[[Any], ToolCallPart | None]] = {
    ToolPartVariant.CANONICAL: _decode_canonical,
    ToolPartVariant.AI_SDK_STATIC: _decode_ai_sdk_static,
    ToolPartVariant.AI_SDK_INVOCATION: _decode_ai_sdk_invocation,
    ToolPartVariant.OPENAI_FUNCTION: _decode_openai_function,
    ToolPartVariant.ANTHROPIC_TOOL_USE: _decode_anthropic_tool_use,
    ToolPartVariant.UNKNOWN: _decode_unknown,
}


def normalize_tool_part(part: Any) -> ToolCallPart | None:
    """Return the canonical tool call for any known representation, else None."""
    return _DECODERS[classify_tool_part(part)](part)


def parse_payload(payload: Any) -> dict[str, Any]:
    """Accept a structured object or its JSON encoding.

    Raises:
        ToolPayloadError: if the payload is neither
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ToolPayloadError(f"Tool payload is not valid JSON: {e.msg}") from e
        except (RecursionError, ValueError) as e:
            raise ToolPayloadError(f"Tool payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ToolPayloadError(f"Tool payload is not an object: {type(payload).__name__}")
    return payload


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return _as_str(value)


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            return 0
    return 0


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def coerce_todo(item: dict[str, Any]) -> ToDoItem:
    """Build a canonical ToDoItem, defaulting every missing field."""
    details = _as_dict(item.get("details"))
    validation = _as_dict(item.get("validation"))
    return ToDoItem(
        id=_as_str(item.get("id")),
        description=_as_str(item.get("description")),
        action=_as_str(item.get("action")),
        details=TodoDetails(
            type=_as_str(details.get("type")),
            selector=_as_optional_str(details.get("selector")),
            value=_as_optional_str(details.get("value")),
            timeout=_as_number(details.get("timeout")),
            expectation=_as_str(details.get("expectation")),
        ),
        validation=TodoValidation(
            selector=_as_str(validation.get("selector")),
            expected_state=_as_str(validation.get("expected_state")),
        ),
    )


def coerce_plan(data: dict[str, Any]) -> Plan:
    """Turn a parsed payload into a Plan. Non-object todo entries are skipped."""
    enhanced_prompt = data.get("enhanced_prompt", data.get("enhancedPrompt"))
    raw_todos = data.get("todos")
    if raw_todos is None:
        raw_todos = []
    elif not isinstance(raw_todos, list):
        logger.warning("Plan todos is not a list (%s); using none", type(raw_todos).__name__)
        raw_todos = []

    todos = []
    for index, item in enumerate(raw_todos):
        if not isinstance(item, dict):
            logger.warning("Skipping plan step %d: not an object", index)
            continue
        todos.append(coerce_todo(item))
    return Plan(enhancedPrompt=_as_str(enhanced_prompt), todos=todos)


def find_tool_call(
    parts: Sequence[ContentPart | dict[str, Any]], tool_name: str
) -> ToolCallPart | None:
    """First tool call whose name is exactly ``tool_name``."""
    for part in parts:
        call = normalize_tool_part(part)
        if call is not None and call.name == tool_name:
            return call
    return None


def extract_plan(
    parts: Sequence[ContentPart | dict[str, Any]], tool_name: str = PLAN_TOOL_NAME
) -> Plan | NoPlan:
    """
    Extract the plan carried by a message's tool-call parts.

    Never raises: a missing tool call or an unusable payload yields ``NoPlan``.

    Args:
        parts: Message parts, canonical or provider-shaped
        tool_name: Tool whose payload holds the plan

    Returns:
        Plan with every missing field defaulted, or NoPlan with a reason
    """
    try:
        call = find_tool_call(parts, tool_name)
    except (TypeError, KeyError, AttributeError) as e:
        logger.warning("Could not scan tool parts for %s: %s", tool_name, e)
        return NoPlan(reason=f"unreadable parts: {e}")

    if call is None:
        logger.debug("No %s tool call in message", tool_name)
        return NoPlan(reason=f"no {tool_name} tool call")

    try:
        return coerce_plan(parse_payload(call.payload))
    except ToolPayloadError as e:
        logger.warning("Ignoring %s payload: %s", tool_name, e.message)
        return NoPlan(reason=e.message)
