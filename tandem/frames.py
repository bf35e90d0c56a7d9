"""
Secondary-stream frame decoding.

The browser automation agent reports progress as Server-Sent Events:
``data: {"type": ..., "data": ...}`` frames separated by a blank line.
Chunks arrive at whatever boundaries the transport picks, so frames are
buffered until their delimiter has been seen.
"""

from collections.abc import AsyncIterable, AsyncIterator, Callable
import codecs
from dataclasses import dataclass
from enum import Enum
import json
import logging
from typing import Any

from .exceptions import DecodeError

logger = logging.getLogger(__name__)

FRAME_DELIMITER = "\n\n"
DATA_PREFIX = "data:"
DONE_PAYLOAD = "[DONE]"


class AgentEventType(str, Enum):
    """Secondary-stream event kinds."""

    INITIAL_SCREENSHOT = "initial_screenshot"
    TEXT = "text"
    TOOL_USE = "tool_use"
    SUMMARY = "summary"
    FINAL_PAYLOAD = "final_payload"
    ERROR = "error"


@dataclass
class AgentEvent:
    """Base class for all agent events."""

    type: AgentEventType
    raw: dict[str, Any]

    @classmethod
    def from_dict(cls, envelope: Any) -> "AgentEvent":
        """Build a typed event from a ``{type, data}`` envelope.

        Raises:
            DecodeError: if the envelope is not an object or names an unknown kind
        """
        if not isinstance(envelope, dict):
            raise DecodeError(f"Frame envelope is not an object: {type(envelope).__name__}")

        try:
            event_type = AgentEventType(envelope.get("type"))
        except ValueError as e:
            raise DecodeError(f"Unknown agent event type: {envelope.get('type')!r}") from e

        data = envelope.get("data")

        if event_type == AgentEventType.INITIAL_SCREENSHOT:
            if isinstance(data, dict):
                data = data.get("screenshot")
            return InitialScreenshotEvent(type=event_type, raw=envelope, screenshot=data or "")

        if event_type == AgentEventType.TEXT:
            text = data if isinstance(data, str) else json.dumps(data)
            return AgentTextEvent(type=event_type, raw=envelope, text=text)

        if event_type == AgentEventType.TOOL_USE:
            action = data if isinstance(data, dict) else {"action": data}
            return ToolUseEvent(type=event_type, raw=envelope, action=action)

        if event_type in (AgentEventType.SUMMARY, AgentEventType.FINAL_PAYLOAD):
            if not isinstance(data, dict):
                data = {"summary": data if isinstance(data, str) else ""}
            return SummaryEvent(
                type=event_type,
                raw=envelope,
                summary=str(data.get("summary") or ""),
                screenshot=data.get("screenshot"),
                full_narrative=data.get("fullNarrative"),
            )

        if isinstance(data, dict):
            message = str(data.get("message") or json.dumps(data))
        else:
            message = str(data) if data is not None else "Unknown agent error"
        return AgentErrorEvent(type=event_type, raw=envelope, message=message)


@dataclass
class InitialScreenshotEvent(AgentEvent):
    """Base64 screenshot of the page before any action ran."""

    screenshot: str


@dataclass
class AgentTextEvent(AgentEvent):
    """Narrative output from the agent."""

    text: str


@dataclass
class ToolUseEvent(AgentEvent):
    """An action the agent performed (click, type, screenshot, ...)."""

    action: dict[str, Any]


@dataclass
class SummaryEvent(AgentEvent):
    """Closing summary; emitted as either ``summary`` or ``final_payload``."""

    summary: str
    screenshot: str | None = None
    full_narrative: str | None = None


@dataclass
class AgentErrorEvent(AgentEvent):
    """The agent failed."""

    message: str


def frame_payload(frame: str) -> str | None:
    """Join the ``data:`` lines of one frame. Returns None for frames without data."""
    data_lines: list[str] = []
    for raw_line in frame.split("\n"):
        stripped = raw_line.strip()
        if not stripped or stripped.startswith(":"):
            continue
        if raw_line.startswith(DATA_PREFIX):
            data_lines.append(raw_line[len(DATA_PREFIX) :].lstrip(" "))

    if not data_lines:
        return None
    payload = "\n".join(data_lines).strip()
    return payload or None


class SSEFrameBuffer:
    """
    Splits arbitrarily chunked SSE text into complete frames.

    Only the incoming chunk is normalised and scanned. The incomplete frame
    is held as a list of pieces and joined once its delimiter arrives.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pieces: list[str] = []
        # A trailing "\r" may be the first half of a "\r\n" split across chunks.
        self._pending_cr = False

    def feed(self, chunk: str | bytes) -> list[str]:
        """Add a chunk and return every frame it completed, in arrival order."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        if self._pending_cr:
            chunk = "\r" + chunk
            self._pending_cr = False
        if chunk.endswith("\r"):
            chunk = chunk[:-1]
            self._pending_cr = True
        if not chunk:
            return []

        text = chunk.replace("\r\n", "\n")
        frames: list[str] = []
        if text.startswith("\n") and self._pieces and self._pieces[-1].endswith("\n"):
            # Delimiter straddles the previous chunk and this one.
            self._emit("".join(self._pieces)[:-1], frames)
            self._pieces = []
            text = text[1:]

        *complete, rest = text.split(FRAME_DELIMITER)
        if complete:
            self._emit("".join(self._pieces) + complete[0], frames)
            for frame in complete[1:]:
                self._emit(frame, frames)
            self._pieces = []
        if rest:
            self._pieces.append(rest)
        return frames

    def flush(self) -> list[str]:
        """Return the trailing frame left when the transport closed, if any."""
        tail = "".join(self._pieces) + self._decoder.decode(b"", final=True)
        if self._pending_cr:
            tail += "\r"
        self._pieces = []
        self._pending_cr = False
        tail = tail.replace("\r\n", "\n")
        return [tail] if tail.strip() else []

    @staticmethod
    def _emit(frame: str, frames: list[str]) -> None:
        if frame.strip():
            frames.append(frame)


class AgentFrameParser:
    """
    Incremental parser turning raw chunks into AgentEvents.

    Malformed frames are dropped: the DecodeError is logged, recorded in
    ``errors`` and passed to ``on_error``; parsing continues with the next frame.
    """

    def __init__(self, on_error: Callable[[DecodeError], None] | None = None) -> None:
        self._frames = SSEFrameBuffer()
        self._on_error = on_error
        self.errors: list[DecodeError] = []
        self.done = False

    def feed(self, chunk: str | bytes) -> list[AgentEvent]:
        if self.done:
            return []
        return self._parse_frames(self._frames.feed(chunk))

    def close(self) -> list[AgentEvent]:
        if self.done:
            return []
        events = self._parse_frames(self._frames.flush())
        self.done = True
        return events

    def _parse_frames(self, frames: list[str]) -> list[AgentEvent]:
        events: list[AgentEvent] = []
        for frame in frames:
            if self.done:
                break
            payload = frame_payload(frame)
            if payload is None:
                continue
            if payload == DONE_PAYLOAD:
                self.done = True
                break
            try:
                events.append(AgentEvent.from_dict(json.loads(payload)))
            except json.JSONDecodeError as e:
                self._report(DecodeError(f"Invalid JSON in agent frame: {e.msg}", frame=frame))
            except RecursionError:
                self._report(DecodeError("Agent frame JSON is nested too deeply", frame=frame))
            except DecodeError as e:
                e.frame = frame
                self._report(e)
        return events

    def _report(self, error: DecodeError) -> None:
        logger.warning("Dropping agent frame: %s (%s)", error.message, error.frame[:200])
        self.errors.append(error)
        if self._on_error is not None:
            self._on_error(error)


class StreamFrameDecoder:
    """
    Lazy, ordered AgentEvent sequence over one transport stream.

    Usage:
        async for event in StreamFrameDecoder(transport_chunks):
            ...

    An instance can be iterated once; decode a retried transport with a new decoder.
    """

    def __init__(
        self,
        chunks: AsyncIterable[str | bytes],
        on_error: Callable[[DecodeError], None] | None = None,
    ) -> None:
        self._chunks = chunks
        self._parser = AgentFrameParser(on_error=on_error)
        self._consumed = False

    @property
    def errors(self) -> list[DecodeError]:
        return self._parser.errors

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        if self._consumed:
            raise RuntimeError("StreamFrameDecoder has already been consumed")
        self._consumed = True
        return self._decode()

    async def _decode(self) -> AsyncIterator[AgentEvent]:
        async for chunk in self._chunks:
            for event in self._parser.feed(chunk):
                yield event
            if self._parser.done:
                return
        for event in self._parser.close():
            yield event
