"""Thin HTTP layer wrapping requests.Session for the chat and agent endpoints."""

import asyncio
from collections.abc import AsyncIterator, Sequence
import logging
import time
from typing import Any

import requests

from ._types import ContentPart, Message, TextPart
from .exceptions import StreamTransportError
from .streaming import parse_ui_message_stream

logger = logging.getLogger(__name__)

# Retry config
_MAX_RETRIES = 3
_INITIAL_BACKOFF = 0.5  # seconds
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _raise_for_status(resp: requests.Response, *, label: str, path: str = "") -> None:
    """Map HTTP error responses to StreamTransportError."""
    message = f"HTTP {resp.status_code}"
    try:
        body = resp.json()
        # Endpoints answer {"error": ..., "details": ...}
        message = body.get("details") or body.get("error") or message
    except (ValueError, AttributeError):
        logger.debug("Failed to parse error body: %s", resp.text[:200] if resp.text else "empty")
        message = resp.text or message

    resp.close()
    raise StreamTransportError(
        str(message), stream=label, status_code=resp.status_code, details={"path": path}
    )


class HTTPClient:
    """Minimal HTTP client with optional Bearer auth and automatic retry. Calls block."""

    def __init__(self, base_url: str, api_key: str | None = None, timeout: int = 300):
        self._session = requests.Session()
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"
        self._session.headers["Content-Type"] = "application/json"
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def stream(
        self, method: str, path: str, *, label: str = "primary", **kwargs: Any
    ) -> requests.Response:
        """Open a streaming response, retrying on 429/5xx and connection errors."""
        url = f"{self._base_url}{path}"
        for attempt in range(_MAX_RETRIES):
            try:
                resp = self._session.request(
                    method, url, timeout=self._timeout, stream=True, **kwargs
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                logger.warning("Request failed (attempt %d/%d): %s", attempt + 1, _MAX_RETRIES, e)
                if attempt < _MAX_RETRIES - 1:
                    time.sleep(_INITIAL_BACKOFF * (2**attempt))
                    continue
                raise StreamTransportError(str(e), stream=label) from e

            if resp.ok:
                return resp

            if resp.status_code not in _RETRYABLE_STATUS or attempt == _MAX_RETRIES - 1:
                _raise_for_status(resp, label=label, path=path)

            retry_after = resp.headers.get("Retry-After")
            if retry_after and resp.status_code == 429:
                try:
                    delay = float(retry_after)
                except ValueError:
                    logger.debug("Unparseable Retry-After header: %s", retry_after)
                    delay = _INITIAL_BACKOFF * (2**attempt)
            else:
                delay = _INITIAL_BACKOFF * (2**attempt)
            resp.close()
            logger.debug("Retrying %s %s (attempt %d, delay %.1fs)", method, url, attempt + 1, delay)
            time.sleep(delay)

        raise StreamTransportError("Max retries exceeded", stream=label)

    def close(self) -> None:
        self._session.close()


async def iter_response_chunks(response: requests.Response, label: str) -> AsyncIterator[bytes]:
    """Read a streaming response without blocking the event loop."""
    iterator = response.iter_content(chunk_size=None)
    try:
        while True:
            try:
                chunk = await asyncio.to_thread(next, iterator, None)
            except requests.RequestException as e:
                raise StreamTransportError(str(e), stream=label) from e
            if chunk is None:
                return
            if chunk:
                yield chunk
    finally:
        response.close()


def to_ui_message(message: Message) -> dict[str, Any] | None:
    """Text-only UI message for the chat endpoint; messages without text are left out."""
    parts = [{"type": "text", "text": p.text} for p in message.parts if isinstance(p, TextPart)]
    if not parts or message.is_error:
        return None
    return {"id": message.id, "role": message.role, "parts": parts}


class ChatTransport:
    """Primary stream: POSTs the conversation and yields UI message stream fragments."""

    def __init__(self, http: HTTPClient, path: str = "/api/ai/chat") -> None:
        self._http = http
        self._path = path

    async def __call__(self, messages: Sequence[Message]) -> AsyncIterator[ContentPart]:
        wire = [m for m in (to_ui_message(msg) for msg in messages) if m is not None]
        response = await asyncio.to_thread(
            self._http.stream, "POST", self._path, label="primary", json={"messages": wire}
        )
        async for fragment in parse_ui_message_stream(iter_response_chunks(response, "primary")):
            yield fragment


class AgentTransport:
    """Secondary stream: POSTs an instruction and yields the raw SSE chunks."""

    def __init__(self, http: HTTPClient, path: str = "/api/crawl") -> None:
        self._http = http
        self._path = path

    async def __call__(self, instruction: str) -> AsyncIterator[bytes]:
        response = await asyncio.to_thread(
            self._http.stream,
            "POST",
            self._path,
            label="secondary",
            json={"instruction": instruction},
        )
        async for chunk in iter_response_chunks(response, "secondary"):
            yield chunk
