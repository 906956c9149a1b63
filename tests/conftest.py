"""
Pytest configuration and fixtures for threadsync tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from threadsync.models import Message, MessageDirection, MessageType, Thread

BASE_TIME = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(milliseconds=ms, seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at BASE_TIME."""
    return FakeClock()


@pytest.fixture
def make_message():
    """Factory for messages relative to BASE_TIME."""

    def _make(
        id: str,
        text: str | None = "hello",
        offset_ms: float = 0,
        direction: MessageDirection = MessageDirection.INCOMING,
        scope: str | None = None,
        thread_id: str = "t-1",
        message_type: MessageType = MessageType.CHAT,
        at: datetime | None = None,
    ) -> Message:
        return Message(
            id=id,
            thread_id=thread_id,
            text=text,
            direction=direction,
            scope=scope,
            message_type=message_type,
            created_at=at or BASE_TIME + timedelta(milliseconds=offset_ms),
        )

    return _make


@pytest.fixture
def thread() -> Thread:
    """Sendable thread."""
    return Thread(
        id="t-1",
        participant_id="user-1",
        workflow_type="Support:Chat",
        workflow_id="wf-1",
        agent="Support Agent",
        updated_at=BASE_TIME,
    )
