"""Tests for the HTTP client and stream transports."""

import json
from unittest.mock import patch

import pytest
import requests
import responses

from tandem._http import (
    AgentTransport,
    ChatTransport,
    HTTPClient,
    to_ui_message,
)
from tandem._types import Message, TextPart, ToolCallPart
from tandem.exceptions import StreamTransportError
from tandem.frames import StreamFrameDecoder
from tests.utils.factories import sse_frame, ui_frame

BASE = "http://tandem.test"


@pytest.fixture
def http():
    client = HTTPClient(BASE, api_key="tk_test123", timeout=10)
    yield client
    client.close()


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("tandem._http.time.sleep") as sleep:
        yield sleep


class TestHTTPClient:
    @responses.activate
    def test_auth_header(self, http):
        responses.add(responses.POST, f"{BASE}/api/crawl", body="", status=200)
        http.stream("POST", "/api/crawl").close()
        assert responses.calls[0].request.headers["Authorization"] == "Bearer tk_test123"

    @responses.activate
    def test_no_auth_header_without_key(self):
        client = HTTPClient(BASE)
        responses.add(responses.POST, f"{BASE}/x", body="", status=200)
        client.stream("POST", "/x").close()
        assert "Authorization" not in responses.calls[0].request.headers

    @responses.activate
    def test_trailing_slash_stripped(self):
        client = HTTPClient(f"{BASE}/", timeout=5)
        responses.add(responses.POST, f"{BASE}/x", body="", status=200)
        client.stream("POST", "/x").close()
        assert responses.calls[0].request.url == f"{BASE}/x"


class TestErrorMapping:
    @responses.activate
    def test_error_body_details(self, http):
        responses.add(
            responses.POST,
            f"{BASE}/api/ai/chat",
            json={"error": "Bad request", "details": "messages is required"},
            status=400,
        )
        with pytest.raises(StreamTransportError) as exc_info:
            http.stream("POST", "/api/ai/chat")
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "messages is required"
        assert exc_info.value.details == {"path": "/api/ai/chat"}

    @responses.activate
    def test_plain_text_body(self, http):
        responses.add(responses.POST, f"{BASE}/x", body="nope", status=404)
        with pytest.raises(StreamTransportError, match="nope"):
            http.stream("POST", "/x", label="secondary")

    @responses.activate
    def test_label_carried(self, http):
        responses.add(responses.POST, f"{BASE}/x", json={"error": "x"}, status=401)
        with pytest.raises(StreamTransportError) as exc_info:
            http.stream("POST", "/x", label="secondary")
        assert exc_info.value.stream == "secondary"

    @responses.activate
    def test_client_errors_not_retried(self, http):
        responses.add(responses.POST, f"{BASE}/x", json={"error": "x"}, status=422)
        with pytest.raises(StreamTransportError):
            http.stream("POST", "/x")
        assert len(responses.calls) == 1


class TestRetry:
    @responses.activate
    def test_retries_server_errors(self, http, no_sleep):
        responses.add(responses.POST, f"{BASE}/x", json={"error": "down"}, status=503)
        responses.add(responses.POST, f"{BASE}/x", body="ok", status=200)

        resp = http.stream("POST", "/x")
        assert resp.status_code == 200
        assert len(responses.calls) == 2
        no_sleep.assert_called_once_with(0.5)

    @responses.activate
    def test_gives_up_after_max_retries(self, http):
        for _ in range(3):
            responses.add(responses.POST, f"{BASE}/x", json={"error": "down"}, status=500)
        with pytest.raises(StreamTransportError) as exc_info:
            http.stream("POST", "/x")
        assert exc_info.value.status_code == 500
        assert len(responses.calls) == 3

    @responses.activate
    def test_retry_after_header(self, http, no_sleep):
        responses.add(
            responses.POST, f"{BASE}/x", status=429, headers={"Retry-After": "2"}, body=""
        )
        responses.add(responses.POST, f"{BASE}/x", body="ok", status=200)
        http.stream("POST", "/x")
        no_sleep.assert_called_once_with(2.0)

    @responses.activate
    def test_connection_error_retried(self, http):
        responses.add(responses.POST, f"{BASE}/x", body=requests.ConnectionError("refused"))
        responses.add(responses.POST, f"{BASE}/x", body="ok", status=200)
        assert http.stream("POST", "/x").status_code == 200

    @responses.activate
    def test_connection_error_exhausted(self, http):
        for _ in range(3):
            responses.add(responses.POST, f"{BASE}/x", body=requests.ConnectionError("refused"))
        with pytest.raises(StreamTransportError, match="refused"):
            http.stream("POST", "/x")


class TestToUIMessage:
    def test_text_parts_only(self):
        message = Message(
            id="m1",
            role="assistant",
            parts=[TextPart(text="a"), ToolCallPart(name="t", payload={})],
        )
        assert to_ui_message(message) == {
            "id": "m1",
            "role": "assistant",
            "parts": [{"type": "text", "text": "a"}],
        }

    def test_error_and_textless_messages_dropped(self):
        assert to_ui_message(Message.error("boom")) is None
        assert to_ui_message(Message(role="assistant", parts=[ToolCallPart(name="t")])) is None


class TestTransports:
    @pytest.mark.asyncio
    @responses.activate
    async def test_chat_transport(self, http):
        body = ui_frame({"type": "text-delta", "delta": "Hi"}) + ui_frame({"type": "finish"})
        responses.add(responses.POST, f"{BASE}/api/ai/chat", body=body, status=200)

        transport = ChatTransport(http)
        history = [Message.text("user", "Hello"), Message.error("old failure")]
        fragments = [f async for f in transport(history)]

        assert fragments == [TextPart(text="Hi")]
        sent = json.loads(responses.calls[0].request.body)
        assert [m["role"] for m in sent["messages"]] == ["user"]
        assert sent["messages"][0]["parts"] == [{"type": "text", "text": "Hello"}]

    @pytest.mark.asyncio
    @responses.activate
    async def test_chat_transport_http_error(self, http):
        responses.add(responses.POST, f"{BASE}/api/ai/chat", json={"error": "no"}, status=401)
        with pytest.raises(StreamTransportError):
            [f async for f in ChatTransport(http)([Message.text("user", "Hi")])]

    @pytest.mark.asyncio
    @responses.activate
    async def test_agent_transport(self, http):
        body = sse_frame("text", "Opening") + sse_frame("final_payload", {"summary": "ok"})
        responses.add(responses.POST, f"{BASE}/api/crawl", body=body, status=200)

        transport = AgentTransport(http)
        events = [e async for e in StreamFrameDecoder(transport("Check example.com"))]

        assert [e.type.value for e in events] == ["text", "final_payload"]
        sent = json.loads(responses.calls[0].request.body)
        assert sent == {"instruction": "Check example.com"}
