"""
tandem - conversation engine for chatting with an LLM while a browser agent works.

Merges the LLM stream and the agent's event stream into one persisted timeline.
"""

__version__ = "0.1.0"

from ._types import (
    SENTINEL_TITLE,
    ContentPart,
    Message,
    NoPlan,
    Plan,
    Session,
    TextPart,
    ToDoItem,
    ToolCallPart,
    ToolResultPart,
)
from .exceptions import (
    ConfigurationError,
    DecodeError,
    NotFoundError,
    PersistenceError,
    StreamTransportError,
    TandemError,
    ToolPayloadError,
    TurnInProgressError,
)
from .extract import extract_plan
from .frames import AgentEvent, AgentEventType, StreamFrameDecoder
from .gate import PersistenceGate
from .reconciler import EventReconciler, TurnOutcome, TurnState
from .store import JSONFileStorage, MemoryStorage, SessionStore

__all__ = [
    "SENTINEL_TITLE",
    "AgentEvent",
    "AgentEventType",
    "ConfigurationError",
    "ContentPart",
    "DecodeError",
    "EventReconciler",
    "JSONFileStorage",
    "MemoryStorage",
    "Message",
    "NoPlan",
    "NotFoundError",
    "PersistenceError",
    "PersistenceGate",
    "Plan",
    "Session",
    "SessionStore",
    "StreamFrameDecoder",
    "StreamTransportError",
    "TandemError",
    "TextPart",
    "ToDoItem",
    "ToolCallPart",
    "ToolPayloadError",
    "ToolResultPart",
    "TurnInProgressError",
    "TurnOutcome",
    "TurnState",
    "extract_plan",
]
