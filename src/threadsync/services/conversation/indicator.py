"""
Reply indicator and recency checks.

After the console user sends a message the UI shows a typing indicator whose
wording depends on how long the agent has been silent:

    < 5s    SENDING          just sent
    5s-60s  AWAITING_REPLY   agent is working
    >= 60s  POSSIBLE_ERROR   agent may not be running

The first reply from the agent side (Outgoing or Handover) clears it. Purely
UI feedback; nothing in the sync logic depends on it.
"""

from collections.abc import Callable
from datetime import datetime
from enum import Enum

from ...models import Message, MessageDirection
from ...settings import settings
from ...utils.date_utils import elapsed_ms, utc_now


class ReplyPhase(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_REPLY = "awaiting_reply"
    POSSIBLE_ERROR = "possible_error"


class ReplyIndicator:
    """Tracks the time since the last unanswered send."""

    def __init__(
        self,
        awaiting_reply_ms: int | None = None,
        possible_error_ms: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.awaiting_reply_ms = (
            awaiting_reply_ms if awaiting_reply_ms is not None else settings.conversation.awaiting_reply_ms
        )
        self.possible_error_ms = (
            possible_error_ms if possible_error_ms is not None else settings.conversation.possible_error_ms
        )
        self.sent_at: datetime | None = None
        self._clock = clock

    def mark_sent(self, at: datetime | None = None) -> None:
        self.sent_at = at or self._clock()

    def clear(self) -> None:
        self.sent_at = None

    def observe(self, message: Message) -> bool:
        """
        Clear the indicator if ``message`` is an agent-side reply.

        Returns:
            True if the indicator was cleared
        """
        if self.sent_at is None or message.is_optimistic:
            return False
        if message.direction == MessageDirection.INCOMING:
            return False
        self.clear()
        return True

    def phase(self, now: datetime | None = None) -> ReplyPhase:
        if self.sent_at is None:
            return ReplyPhase.IDLE
        waited = elapsed_ms(self.sent_at, now or self._clock())
        if waited >= self.possible_error_ms:
            return ReplyPhase.POSSIBLE_ERROR
        if waited >= self.awaiting_reply_ms:
            return ReplyPhase.AWAITING_REPLY
        return ReplyPhase.SENDING


def is_message_recent(
    message: Message,
    now: datetime | None = None,
    window_ms: int | None = None,
) -> bool:
    """True if ``message`` is younger than the "just sent" window (60s)."""
    window = window_ms if window_ms is not None else settings.conversation.recent_window_ms
    return elapsed_ms(message.created_at, now or utc_now()) < window
