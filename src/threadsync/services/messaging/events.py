"""
Push-stream event model.

The thread stream is a long-lived Server-Sent Events response. Each event is
a frame of ``event:`` and ``data:`` lines terminated by a blank line:

    event: connected
    data: {"threadId": "t-1"}

    event: Chat
    data: {"id": "m-1", "threadId": "t-1", "text": "hi"}

The ``event:`` value names the event and the joined ``data:`` lines are its
JSON payload. Comment lines (``: keep-alive``), ``id:`` and ``retry:`` are
ignored. Frames without an ``event:`` line and bare lines outside a frame
fall back to the single-line form ``{"event": name, "data": payload}``.

Event vocabulary:
- connected, heartbeat: liveness only
- Chat, Data, Handoff: payload is one Message
"""

import json
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from ...models import Message, MessageType

CONNECTED_EVENT = "connected"
HEARTBEAT_EVENT = "heartbeat"
LIVENESS_EVENTS = frozenset({CONNECTED_EVENT, HEARTBEAT_EVENT})



class StreamEvent(BaseModel):
    """One event from a thread push stream."""

    event: str = Field(..., description="Event name")
    data: Any = Field(default=None, description="Event payload")

    @property
    def is_liveness(self) -> bool:
        return self.event in LIVENESS_EVENTS

    @property
    def is_message(self) -> bool:
        return self.event in MESSAGE_EVENTS

    def to_message(self) -> Message:
        """
        Parse the payload as a Message.

        Raises:
            ValueError: If this is not a message event
            pydantic.ValidationError: If the payload is not a valid message
        """
        if not self.is_message:
            raise ValueError(f"Event '{self.event}' does not carry a message")
        return Message.model_validate(self.data)


def _decode_event_object(text: str) -> StreamEvent | None:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse stream event: {e}")
        return None

    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        logger.warning(f"Ignoring stream line without an event name: {text[:120]}")
        return None

    return StreamEvent(event=payload["event"], data=payload.get("data"))


def parse_stream_line(line: str) -> StreamEvent | None:
    """
    Parse one self-contained line of the push stream.

    Accepts ``{"event": ..., "data": ...}`` with or without a ``data:``
    prefix. Returns None for blank lines, SSE framing lines and lines that
    are not a JSON event object (those are logged and skipped).
    """
    text = line.strip()
    if not text or text.startswith(":"):
        return None

    if text.startswith("data:"):
        text = text[len("data:"):].strip()
    elif text.startswith(("event:", "id:", "retry:")):
        return None

    return _decode_event_object(text)


class StreamParser:
    """
    Incremental SSE frame assembler.

    Feed it the response body one line at a time; it returns a StreamEvent
    whenever a frame completes. Call ``flush()`` when the body ends to emit
    a final frame that was not terminated by a blank line.

    Usage:
        parser = StreamParser()
        async for line in response.aiter_lines():
            event = parser.feed(line)
            if event is not None:
                yield event
        event = parser.flush()
    """

    def __init__(self):
        self._event: str | None = None
        self._data: list[str] = []

    @property
    def pending(self) -> bool:
        return self._event is not None or bool(self._data)

    def feed(self, line: str) -> StreamEvent | None:
        line = line.rstrip("\r\n")
        if not line.strip():
            return self.flush()
        if line.startswith(":"):
            return None

        if line.lstrip().startswith("{"):
            if self.pending:
                logger.warning(f"Ignoring JSON line inside an SSE frame: {line[:120]}")
                return None
            return _decode_event_object(line)

        field, sep, value = line.partition(":")
        if not sep:
            logger.warning(f"Ignoring unframed stream line: {line[:120]}")
            return None
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value.strip()
        elif field == "data":
            self._data.append(value)
        return None

    def flush(self) -> StreamEvent | None:
        """Emit the buffered frame, if any, and reset."""
        if not self.pending:
            return None
        name, data = self._event, "\n".join(self._data)
        self._event, self._data = None, []

        if not name:
            return _decode_event_object(data)

        payload: Any = None
        if data.strip():
            try:
                payload = json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse payload of '{name}' event: {e}")
                return None
        return StreamEvent(event=name, data=payload)


def format_stream_event(event: StreamEvent) -> str:
    """Serialize an event as one SSE frame (what StreamParser consumes)."""
    data = event.data
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    return f"event: {event.event}\ndata: {json.dumps(data)}\n\n"
