"""
Tests for tandem dataclass models.
"""

from datetime import UTC, datetime, timedelta, timezone

from tandem._types import (
    SENTINEL_TITLE,
    Message,
    NoPlan,
    Plan,
    Session,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    new_session_id,
    parse_timestamp,
    part_from_dict,
)


class TestIdentifiers:
    def test_session_id_shape(self):
        session_id = new_session_id()
        prefix, millis, suffix = session_id.split("-")
        assert prefix == "chat"
        assert millis.isdigit()
        assert len(suffix) == 9

    def test_session_ids_unique(self):
        assert len({new_session_id() for _ in range(50)}) == 50


class TestParseTimestamp:
    def test_aware(self):
        parsed = parse_timestamp("2026-03-01T10:00:00+02:00")
        assert parsed.utcoffset() == timedelta(hours=2)

    def test_naive_taken_as_utc(self):
        assert parse_timestamp("2026-03-01T10:00:00").tzinfo == UTC

    def test_datetime_passthrough(self):
        value = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert parse_timestamp(value) is value


class TestPartFromDict:
    def test_canonical_parts(self):
        assert part_from_dict({"type": "text", "text": "hi"}) == TextPart(text="hi")
        assert part_from_dict({"type": "tool-call", "name": "n", "payload": {"a": 1}}) == (
            ToolCallPart(name="n", payload={"a": 1})
        )
        assert part_from_dict({"type": "tool-result", "name": "n", "payload": "x"}) == (
            ToolResultPart(name="n", payload="x")
        )

    def test_provider_part_normalized(self):
        part = part_from_dict({"type": "tool_use", "name": "search", "input": {"q": "x"}})
        assert part == ToolCallPart(name="search", payload={"q": "x"})

    def test_unknown_part_becomes_text(self):
        assert part_from_dict({"type": "reasoning", "text": "hmm"}) == TextPart(text="hmm")


class TestMessage:
    def test_text_factory(self):
        message = Message.text("user", "Hello")
        assert message.role == "user"
        assert message.parts == [TextPart(text="Hello")]
        assert message.id.startswith("msg-")

    def test_content_joins_text_parts(self):
        message = Message(
            role="assistant",
            parts=[TextPart(text="Hello"), ToolCallPart(name="x"), TextPart(text="world ")],
        )
        assert message.content == "Hello world"

    def test_error_message(self):
        message = Message.error("boom")
        assert message.role == "assistant"
        assert message.is_error
        assert message.parts[0].payload == {"message": "boom"}

    def test_regular_message_is_not_error(self):
        assert not Message.text("assistant", "fine").is_error
        assert not Message(role="assistant", parts=[ToolResultPart(name="summary")]).is_error

    def test_round_trip(self):
        message = Message(
            role="assistant",
            parts=[TextPart(text="a"), ToolCallPart(name="t", payload={"k": [1]})],
        )
        assert Message.from_dict(message.to_dict()) == message

    def test_from_dict_content_string(self):
        message = Message.from_dict({"id": "m1", "role": "user", "content": "Hi"})
        assert message.id == "m1"
        assert message.parts == [TextPart(text="Hi")]

    def test_from_dict_unknown_role(self):
        assert Message.from_dict({"role": "tool", "parts": []}).role == "assistant"

    def test_from_dict_skips_non_object_parts(self):
        message = Message.from_dict({"role": "user", "parts": ["x", {"type": "text", "text": "y"}]})
        assert message.parts == [TextPart(text="y")]


class TestSession:
    def test_new_session(self):
        session = Session.new()
        assert session.title == SENTINEL_TITLE
        assert session.messages == []
        assert session.createdAt == session.updatedAt
        assert session.createdAt.tzinfo is not None

    def test_round_trip_rehydrates_datetimes(self):
        session = Session.new()
        session.messages.append(Message.text("user", "Hi"))
        data = session.to_dict()

        assert isinstance(data["createdAt"], str)
        restored = Session.from_dict(data)
        assert restored == session
        assert isinstance(restored.updatedAt, datetime)

    def test_missing_title_uses_sentinel(self):
        session = Session.from_dict(
            {"id": "c1", "createdAt": "2026-01-01T00:00:00Z", "updatedAt": "2026-01-01T00:00:00Z"}
        )
        assert session.title == SENTINEL_TITLE


class TestPlanTruthiness:
    def test_plan_truthy_even_when_empty(self):
        assert Plan(enhancedPrompt="")

    def test_no_plan_falsy(self):
        assert not NoPlan(reason="none")
