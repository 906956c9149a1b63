"""
Unit tests for push-stream event parsing.
"""

import json

import pytest

from threadsync.models import MessageDirection
from threadsync.services.messaging.events import (
    StreamEvent,
    format_stream_event,
    StreamParser,
    parse_stream_line,
)


class TestParseStreamLine:
    """NDJSON and SSE-framed lines."""

    def test_ndjson_message_event(self):
        line = json.dumps({"event": "Chat", "data": {"id": "m-1", "threadId": "t-1", "text": "hi"}})
        event = parse_stream_line(line)
        assert event.event == "Chat"
        assert event.is_message
        assert event.to_message().thread_id == "t-1"

    def test_sse_data_prefix(self):
        event = parse_stream_line('data: {"event": "heartbeat", "data": null}')
        assert event.event == "heartbeat"
        assert event.is_liveness

    @pytest.mark.parametrize("line", ["", "   ", ": keep-alive", "event: message", "id: 7", "retry: 1000"])
    def test_framing_lines_skipped(self, line):
        assert parse_stream_line(line) is None

    def test_invalid_json_skipped(self):
        assert parse_stream_line("{not json") is None

    def test_missing_event_name_skipped(self):
        assert parse_stream_line('{"data": {}}') is None
        assert parse_stream_line("[1, 2]") is None


class TestStreamEvent:
    """Payload conversion."""

    def test_handoff_payload(self):
        event = StreamEvent(event="Handoff", data={"id": "h-1", "direction": "handover", "scope": ""})
        message = event.to_message()
        assert message.direction == MessageDirection.HANDOVER
        assert message.scope == ""

    def test_content_alias(self):
        message = StreamEvent(event="Chat", data={"id": "m-1", "content": "via content"}).to_message()
        assert message.text == "via content"

    def test_liveness_event_has_no_message(self):
        with pytest.raises(ValueError):
            StreamEvent(event="connected", data={"threadId": "t-1"}).to_message()

    def test_format_produces_sse_frame(self):
        frame = format_stream_event(StreamEvent(event="Data", data={"id": "d-1", "data": {"k": 1}}))
        assert frame.startswith("event: Data\ndata: ")
        assert frame.endswith("\n\n")

        parser = StreamParser()
        events = [parser.feed(line) for line in frame.split("\n")]
        parsed = [e for e in events if e is not None]
        assert len(parsed) == 1
        assert parsed[0].to_message().metadata == {"k": 1}


def feed_all(parser: StreamParser, body: str) -> list[StreamEvent]:
    events = [parser.feed(line) for line in body.split("\n")]
    events.append(parser.flush())
    return [e for e in events if e is not None]


class TestStreamParser:
    """SSE frame assembly."""

    def test_event_and_data_lines_form_one_event(self):
        body = (
            "event: connected\n"
            'data: {"threadId":"t-1"}\n'
            "\n"
            "event: Chat\n"
            'data: {"id":"m-1","threadId":"t-1","text":"hi"}\n'
            "\n"
        )
        events = feed_all(StreamParser(), body)

        assert [e.event for e in events] == ["connected", "Chat"]
        assert events[0].is_liveness
        assert events[0].data == {"threadId": "t-1"}
        assert events[1].to_message().text == "hi"

    def test_multiline_data_is_joined(self):
        body = 'event: Handoff\ndata: {"id": "h-1",\ndata:  "direction": "handover"}\n\n'
        events = feed_all(StreamParser(), body)
        assert len(events) == 1
        assert events[0].to_message().direction == MessageDirection.HANDOVER

    def test_event_without_data(self):
        events = feed_all(StreamParser(), "event: heartbeat\n\n")
        assert len(events) == 1
        assert events[0].event == "heartbeat"
        assert events[0].data is None

    def test_comments_and_ids_ignored(self):
        body = ": keep-alive\nid: 7\nretry: 1000\nevent: heartbeat\ndata: null\n\n"
        events = feed_all(StreamParser(), body)
        assert [e.event for e in events] == ["heartbeat"]

    def test_crlf_line_endings(self):
        parser = StreamParser()
        assert parser.feed("event: connected\r") is None
        assert parser.feed('data: {"threadId": "t-1"}\r') is None
        event = parser.feed("\r")
        assert event.event == "connected"

    def test_feed_returns_event_on_blank_line(self):
        parser = StreamParser()
        assert parser.feed("event: Chat") is None
        assert parser.feed('data: {"id": "m-1"}') is None
        assert parser.pending
        event = parser.feed("")
        assert event.event == "Chat"
        assert not parser.pending

    def test_flush_emits_unterminated_frame(self):
        parser = StreamParser()
        parser.feed("event: Chat")
        parser.feed('data: {"id": "m-1"}')
        assert parser.flush().event == "Chat"
        assert parser.flush() is None

    def test_single_line_json_fallback(self):
        body = '{"event": "connected", "data": {"threadId": "t-1"}}\ndata: {"event": "heartbeat", "data": null}\n\n'
        events = feed_all(StreamParser(), body)
        assert [e.event for e in events] == ["connected", "heartbeat"]

    def test_bad_payload_skipped_and_stream_continues(self):
        body = "event: Chat\ndata: {broken\n\nevent: heartbeat\n\n"
        events = feed_all(StreamParser(), body)
        assert [e.event for e in events] == ["heartbeat"]


class TestMessageTimestamp:
    """createdAt presence on wire payloads."""

    def test_payload_with_created_at(self):
        message = StreamEvent(
            event="Chat", data={"id": "m-1", "createdAt": "2025-01-15T12:00:00Z"}
        ).to_message()
        assert message.has_timestamp

    def test_payload_without_created_at(self):
        message = StreamEvent(event="Handoff", data={"id": "h-1", "direction": "Handover"}).to_message()
        assert not message.has_timestamp
        assert message.created_at.tzinfo is not None

    def test_flag_survives_copy(self):
        message = StreamEvent(event="Chat", data={"id": "m-1"}).to_message()
        assert not message.model_copy(update={"text": "x"}).has_timestamp
