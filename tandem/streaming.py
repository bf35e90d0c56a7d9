"""
AI SDK streaming protocol parser for the primary (LLM) stream.

The chat endpoint answers with the Vercel AI SDK UI message stream: SSE
frames carrying flat JSON events. Only the events that change the timeline
become ContentPart fragments; everything else is skipped.

Protocol: https://ai-sdk.dev/docs/ai-sdk-ui/stream-protocol
"""

from collections.abc import AsyncIterable, AsyncIterator
from enum import Enum
import json
import logging
from typing import Any

from ._types import ContentPart, TextPart, ToolCallPart, ToolResultPart
from .exceptions import StreamTransportError
from .frames import DONE_PAYLOAD, SSEFrameBuffer, frame_payload

logger = logging.getLogger(__name__)


class UIStreamEventType(str, Enum):
    """AI SDK UI message stream event types."""

    # Message lifecycle
    START = "start"
    START_STEP = "start-step"
    FINISH_STEP = "finish-step"
    FINISH = "finish"

    # Text events
    TEXT_START = "text-start"
    TEXT_DELTA = "text-delta"
    TEXT_END = "text-end"

    # Reasoning events
    REASONING_START = "reasoning-start"
    REASONING_DELTA = "reasoning-delta"
    REASONING_END = "reasoning-end"

    # Tool events
    TOOL_INPUT_START = "tool-input-start"
    TOOL_INPUT_DELTA = "tool-input-delta"
    TOOL_INPUT_AVAILABLE = "tool-input-available"
    TOOL_OUTPUT_AVAILABLE = "tool-output-available"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"

    # Error events
    ERROR = "error"

    # Unknown/custom events
    UNKNOWN = "unknown"


class UIMessageStreamParser:
    """
    Stateful translation of UI stream events into timeline fragments.

    Tool names are remembered per ``toolCallId`` so output events, which do
    not repeat the name, can be attributed. Streamed tool input text is kept
    as the payload when no parsed ``input`` arrives.
    """

    def __init__(self) -> None:
        self.tool_names: dict[str, str] = {}
        self.tool_input_text: dict[str, str] = {}
        self.finished = False

    def process(self, data: dict[str, Any]) -> ContentPart | None:
        """
        Translate one event.

        Raises:
            StreamTransportError: for an ``error`` event
        """
        try:
            event_type = UIStreamEventType(data.get("type", "unknown"))
        except ValueError:
            event_type = UIStreamEventType.UNKNOWN

        tool_call_id = data.get("toolCallId") or data.get("tool_call_id")

        if event_type == UIStreamEventType.TEXT_DELTA:
            delta = data.get("delta") or data.get("textDelta") or ""
            return TextPart(text=delta) if delta else None

        if event_type == UIStreamEventType.TOOL_INPUT_START:
            if tool_call_id:
                self.tool_names[tool_call_id] = data.get("toolName", "")
                self.tool_input_text[tool_call_id] = ""
            return None

        if event_type == UIStreamEventType.TOOL_INPUT_DELTA:
            if tool_call_id in self.tool_input_text:
                self.tool_input_text[tool_call_id] += data.get("inputTextDelta", "")
            return None

        if event_type in (UIStreamEventType.TOOL_INPUT_AVAILABLE, UIStreamEventType.TOOL_CALL):
            name = data.get("toolName") or self.tool_names.get(tool_call_id, "")
            if tool_call_id:
                self.tool_names[tool_call_id] = name
            payload = data.get("input", data.get("args"))
            if payload is None:
                payload = self.tool_input_text.get(tool_call_id) or None
            return ToolCallPart(name=name, payload=payload)

        if event_type in (UIStreamEventType.TOOL_OUTPUT_AVAILABLE, UIStreamEventType.TOOL_RESULT):
            name = data.get("toolName") or self.tool_names.get(tool_call_id, "")
            payload = data.get("output", data.get("result"))
            return ToolResultPart(name=name, payload=payload)

        if event_type == UIStreamEventType.ERROR:
            message = data.get("errorText") or data.get("error") or "Unknown stream error"
            raise StreamTransportError(str(message), stream="primary")

        if event_type == UIStreamEventType.FINISH:
            self.finished = True
            return None

        if event_type == UIStreamEventType.UNKNOWN:
            logger.debug("Skipping unknown UI stream event: %s", data.get("type"))
        return None


async def parse_ui_message_stream(
    chunks: AsyncIterable[str | bytes],
) -> AsyncIterator[ContentPart]:
    """
    Parse a UI message stream into ContentPart fragments.

    Args:
        chunks: Raw transport chunks at arbitrary boundaries

    Yields:
        TextPart deltas and whole ToolCallPart / ToolResultPart fragments
    """
    frames = SSEFrameBuffer()
    parser = UIMessageStreamParser()

    async for chunk in chunks:
        for frame in frames.feed(chunk):
            payload = frame_payload(frame)
            if payload is None:
                continue
            if payload == DONE_PAYLOAD:
                return
            fragment = _process_payload(parser, payload)
            if fragment is not None:
                yield fragment
            if parser.finished:
                return

    # Trailing frame without a final blank line.
    for frame in frames.flush():
        payload = frame_payload(frame)
        if payload is None or payload == DONE_PAYLOAD:
            continue
        fragment = _process_payload(parser, payload)
        if fragment is not None:
            yield fragment


def _process_payload(parser: UIMessageStreamParser, payload: str) -> ContentPart | None:
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, RecursionError):
        logger.warning("Failed to parse SSE JSON: %s", payload[:200])
        return None
    if not isinstance(data, dict):
        return None
    return parser.process(data)
