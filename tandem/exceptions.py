"""
Exception classes for tandem.

Decode and payload errors are recoverable and normally absorbed where they
occur; transport errors end one stream; persistence errors leave in-memory
state untouched so the next settle point can retry.
"""

from typing import Any


class TandemError(Exception):
    """Base exception for all tandem errors."""

    def __init__(self, message: str, code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class DecodeError(TandemError):
    """Raised when a secondary-stream frame cannot be decoded."""

    def __init__(self, message: str, frame: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.frame = frame


class ToolPayloadError(TandemError):
    """Raised when a tool-call payload cannot be turned into a plan."""


class StreamTransportError(TandemError):
    """Raised when a primary or secondary stream fails or is aborted."""

    def __init__(
        self,
        message: str,
        stream: str = "primary",
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.stream = stream
        self.status_code = status_code


class PersistenceError(TandemError):
    """Raised when the session store cannot write to durable storage."""


class NotFoundError(TandemError):
    """Raised when a session id is not present in the store."""

    def __init__(self, message: str, session_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.session_id = session_id

    @classmethod
    def session(cls, session_id: str) -> "NotFoundError":
        """Create error for an unknown session id."""
        return cls(f"Session not found: {session_id}", session_id=session_id, code="not_found")


class TurnInProgressError(TandemError):
    """Raised when input is submitted while a turn is still running."""


class ConfigurationError(TandemError):
    """Raised when settings from the environment are invalid."""
