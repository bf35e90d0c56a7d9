"""
Tests for the chat command, end to end against mocked endpoints.
"""

from argparse import Namespace
import asyncio
import json

import pytest
import responses

from tandem.cli.commands.chat import ChatCommand
from tandem.config import Settings
from tandem.store import JSONFileStorage, SessionStore
from tests.utils.factories import sse_frame, ui_frame

BASE = "http://tandem.test"
CHAT_URL = f"{BASE}/api/ai/chat"
AGENT_URL = f"{BASE}/api/crawl"


@pytest.fixture
def chat_settings(tmp_path):
    return Settings(base_url=BASE, store_path=tmp_path / "sessions.json")


def chat_args(settings, message, **overrides):
    values = {"session": None, "new": False, "no_agent": False}
    values.update(overrides)
    return Namespace(settings=settings, message=message, **values)


def reload(settings) -> SessionStore:
    store = SessionStore(JSONFileStorage(settings.store_path))
    asyncio.run(store.load())
    return store


def reply(*deltas: str) -> str:
    body = "".join(ui_frame({"type": "text-delta", "delta": d}) for d in deltas)
    return body + ui_frame({"type": "finish"})


class TestChatCommand:
    @responses.activate
    def test_chat_turn_persisted(self, chat_settings, capsys):
        responses.add(responses.POST, CHAT_URL, body=reply("Hi ", "there"), status=200)

        store = SessionStore(JSONFileStorage(chat_settings.store_path))
        result = ChatCommand().execute(chat_args(chat_settings, "Hello"), store)

        assert result == 0
        session = reload(chat_settings).current
        assert [m.content for m in session.messages] == ["Hello", "Hi there"]
        assert session.title == "Hello"
        out = capsys.readouterr().out
        assert "Hi there" in out
        assert session.id in out

    @responses.activate
    def test_chat_continues_current_session(self, chat_settings):
        responses.add(responses.POST, CHAT_URL, body=reply("one"), status=200)
        responses.add(responses.POST, CHAT_URL, body=reply("two"), status=200)

        ChatCommand().execute(
            chat_args(chat_settings, "First"), SessionStore(JSONFileStorage(chat_settings.store_path))
        )
        ChatCommand().execute(
            chat_args(chat_settings, "Second"),
            SessionStore(JSONFileStorage(chat_settings.store_path)),
        )

        store = reload(chat_settings)
        assert len(store) == 1
        assert [m.content for m in store.current.messages] == ["First", "one", "Second", "two"]
        sent = json.loads(responses.calls[1].request.body)
        assert len(sent["messages"]) == 3

    @responses.activate
    def test_new_flag_starts_fresh_session(self, chat_settings):
        responses.add(responses.POST, CHAT_URL, body=reply("ok"), status=200)
        for message, new in (("First", False), ("Fresh", True)):
            ChatCommand().execute(
                chat_args(chat_settings, message, new=new),
                SessionStore(JSONFileStorage(chat_settings.store_path)),
            )

        store = reload(chat_settings)
        assert len(store) == 2
        assert store.current.title == "Fresh"

    @responses.activate
    def test_agent_turn_with_follow_up(self, chat_settings):
        responses.add(responses.POST, CHAT_URL, body=reply("Checking"), status=200)
        responses.add(responses.POST, CHAT_URL, body=reply("Verdict: safe"), status=200)
        agent_body = (
            sse_frame("initial_screenshot", "aW1n")
            + sse_frame("text", "Opened the page")
            + sse_frame("final_payload", {"summary": "Nothing suspicious"})
        )
        responses.add(responses.POST, AGENT_URL, body=agent_body, status=200)

        result = ChatCommand().execute(
            chat_args(chat_settings, "Check if example.com is safe"),
            SessionStore(JSONFileStorage(chat_settings.store_path)),
        )

        assert result == 0
        chat_calls = [c for c in responses.calls if c.request.url == CHAT_URL]
        assert len(chat_calls) == 2
        follow_up = json.loads(chat_calls[1].request.body)["messages"][-1]
        assert follow_up["role"] == "system"
        assert "Nothing suspicious" in follow_up["parts"][0]["text"]

        messages = reload(chat_settings).current.messages
        assert [m.role for m in messages].count("system") == 1
        assert messages[-1].content == "Verdict: safe"

    @responses.activate
    def test_no_agent_flag(self, chat_settings):
        responses.add(responses.POST, CHAT_URL, body=reply("ok"), status=200)

        ChatCommand().execute(
            chat_args(chat_settings, "Check example.com", no_agent=True),
            SessionStore(JSONFileStorage(chat_settings.store_path)),
        )

        assert all(c.request.url == CHAT_URL for c in responses.calls)

    @responses.activate
    def test_chat_error_reported_and_saved(self, chat_settings, capsys):
        responses.add(responses.POST, CHAT_URL, json={"error": "Invalid API key"}, status=401)

        result = ChatCommand().execute(
            chat_args(chat_settings, "Hello"),
            SessionStore(JSONFileStorage(chat_settings.store_path)),
        )

        assert result == 1
        messages = reload(chat_settings).current.messages
        assert messages[-1].is_error
        assert "Invalid API key" in capsys.readouterr().out

    def test_unknown_session(self, chat_settings, capsys):
        result = ChatCommand().execute(
            chat_args(chat_settings, "Hello", session="chat-missing"),
            SessionStore(JSONFileStorage(chat_settings.store_path)),
        )
        assert result == 1
        assert "Session not found" in capsys.readouterr().out
