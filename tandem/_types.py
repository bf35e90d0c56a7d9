"""Dataclass models for sessions, messages and plans."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
import time
from typing import Any, Literal
import uuid

SENTINEL_TITLE = "New Chat"

Role = Literal["user", "assistant", "system"]
ROLES: tuple[str, ...] = ("user", "assistant", "system")

ERROR_PART_NAME = "error"


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_session_id() -> str:
    return f"chat-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex[:16]}"


def parse_timestamp(value: Any) -> datetime:
    """Rehydrate an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class TextPart:
    """Plain text content."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass
class ToolCallPart:
    """A tool invocation; payload is a structured object or JSON text."""

    name: str
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool-call", "name": self.name, "payload": self.payload}


@dataclass
class ToolResultPart:
    """The result of a tool invocation."""

    name: str
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool-result", "name": self.name, "payload": self.payload}


ContentPart = TextPart | ToolCallPart | ToolResultPart


def part_from_dict(data: dict[str, Any]) -> ContentPart:
    """Decode a stored part. Provider-shaped parts go through the tool variant matcher."""
    part_type = data.get("type")
    if part_type == "text":
        return TextPart(text=str(data.get("text", "")))
    if part_type == "tool-call":
        return ToolCallPart(name=str(data.get("name", "")), payload=data.get("payload"))
    if part_type == "tool-result":
        return ToolResultPart(name=str(data.get("name", "")), payload=data.get("payload"))

    from .extract import normalize_tool_part

    normalized = normalize_tool_part(data)
    if normalized is not None:
        return normalized
    return TextPart(text=str(data.get("text", "")))


@dataclass
class Message:
    """One timeline entry authored by the user, the assistant or the system."""

    role: Role
    parts: list[ContentPart] = field(default_factory=list)
    id: str = field(default_factory=new_message_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        role = data.get("role", "assistant")
        if role not in ROLES:
            role = "assistant"
        parts = data.get("parts")
        if parts is None and isinstance(data.get("content"), str):
            parts = [{"type": "text", "text": data["content"]}]
        return cls(
            id=str(data.get("id") or new_message_id()),
            role=role,
            parts=[part_from_dict(p) for p in parts or [] if isinstance(p, dict)],
        )

    @classmethod
    def text(cls, role: Role, text: str) -> Message:
        return cls(role=role, parts=[TextPart(text=text)])

    @classmethod
    def error(cls, message: str) -> Message:
        """Build the synthetic assistant Message that reports a stream failure."""
        return cls(
            role="assistant",
            parts=[ToolResultPart(name=ERROR_PART_NAME, payload={"message": message})],
        )

    @property
    def is_error(self) -> bool:
        return (
            self.role == "assistant"
            and len(self.parts) == 1
            and isinstance(self.parts[0], ToolResultPart)
            and self.parts[0].name == ERROR_PART_NAME
        )

    @property
    def content(self) -> str:
        """Flattened text of all text parts."""
        return " ".join(p.text for p in self.parts if isinstance(p, TextPart)).strip()

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "role": self.role, "parts": [p.to_dict() for p in self.parts]}


@dataclass
class Session:
    """A persisted conversation."""

    id: str
    title: str
    createdAt: datetime
    updatedAt: datetime
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def new(cls) -> Session:
        now = utcnow()
        return cls(id=new_session_id(), title=SENTINEL_TITLE, createdAt=now, updatedAt=now)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or SENTINEL_TITLE),
            createdAt=parse_timestamp(data["createdAt"]),
            updatedAt=parse_timestamp(data["updatedAt"]),
            messages=[
                Message.from_dict(m) for m in data.get("messages") or [] if isinstance(m, dict)
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.createdAt.isoformat(),
            "updatedAt": self.updatedAt.isoformat(),
            "messages": [m.to_dict() for m in self.messages],
        }


@dataclass
class TodoDetails:
    """How a plan step is carried out in the browser."""

    type: str = ""
    selector: str | None = None
    value: str | None = None
    timeout: float = 0
    expectation: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.selector is not None:
            data["selector"] = self.selector
        if self.value is not None:
            data["value"] = self.value
        data["timeout"] = self.timeout
        data["expectation"] = self.expectation
        return data


@dataclass
class TodoValidation:
    """How a plan step's outcome is checked."""

    selector: str = ""
    expected_state: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"selector": self.selector, "expected_state": self.expected_state}


@dataclass
class ToDoItem:
    """A canonical plan step. Built by the tool-call extractor only."""

    id: str
    description: str
    action: str
    details: TodoDetails
    validation: TodoValidation

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "action": self.action,
            "details": self.details.to_dict(),
            "validation": self.validation.to_dict(),
        }


@dataclass
class Plan:
    """Browser automation plan produced by the progressive_todos tool."""

    enhancedPrompt: str
    todos: list[ToDoItem] = field(default_factory=list)

    def __bool__(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "enhanced_prompt": self.enhancedPrompt,
            "todos": [t.to_dict() for t in self.todos],
        }


@dataclass
class NoPlan:
    """Explicit result when no plan could be extracted."""

    reason: str

    def __bool__(self) -> bool:
        return False
