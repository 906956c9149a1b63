"""
Reconciliation of incoming messages into a thread's message list.

Three sources feed one list:
- History pages: appended and deduplicated. History never contains pending
  local writes, so no optimistic matching is done.
- Streamed messages: deduplicated, and allowed to retire one optimistic entry.
- Local sends: an optimistic entry with a ``temp-`` id inserted before the
  network call completes.

Optimistic Matching:
    The send endpoint returns a thread id, not the created message, so an
    optimistic entry cannot be correlated by id. A streamed message M retires
    the first optimistic entry O where

        O.text == M.text
        O.direction == M.direction
        |O.created_at - M.created_at| < match window (5s)

    This can misfire on identical text sent twice within the window, or miss
    when the server rewrites the text. The unmatched optimistic entry then
    stays visible next to the real one.
"""

from collections.abc import Callable, Iterable
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger

from ...models import OPTIMISTIC_ID_PREFIX, Message, MessageDirection, MessageType
from ...settings import settings
from ...utils.date_utils import elapsed_ms, to_epoch_ms, utc_now
from .store import contains_id, insert_or_replace, merge_all, sort_newest_first


class MergeOutcome(str, Enum):
    DUPLICATE = "duplicate"
    REPLACED_OPTIMISTIC = "replaced_optimistic"
    INSERTED = "inserted"


class Reconciler:
    """
    Merges messages from history, stream and local sends.

    Attributes:
        match_window_ms: Max |created_at| distance for optimistic matching
    """

    def __init__(
        self,
        match_window_ms: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.match_window_ms = (
            match_window_ms
            if match_window_ms is not None
            else settings.conversation.optimistic_match_window_ms
        )
        self._clock = clock
        self._last_temp_ms = 0

    def next_temp_id(self) -> str:
        """``temp-<epoch ms>``, strictly increasing within this reconciler."""
        now_ms = to_epoch_ms(self._clock())
        self._last_temp_ms = max(now_ms, self._last_temp_ms + 1)
        return f"{OPTIMISTIC_ID_PREFIX}{self._last_temp_ms}"

    def find_optimistic_match(
        self, messages: Iterable[Message], incoming: Message
    ) -> Message | None:
        """First optimistic entry that ``incoming`` is the server echo of."""
        for candidate in messages:
            if not candidate.is_optimistic:
                continue
            if candidate.text != incoming.text or candidate.direction != incoming.direction:
                continue
            if abs(elapsed_ms(candidate.created_at, incoming.created_at)) < self.match_window_ms:
                return candidate
        return None

    def merge_streamed(
        self, messages: list[Message], incoming: Message
    ) -> tuple[list[Message], MergeOutcome]:
        """
        Merge a real (server-assigned id) message.

        Returns:
            (new sorted list, what happened)
        """
        if contains_id(messages, incoming.id):
            logger.debug(f"Ignoring duplicate message {incoming.id}")
            return sort_newest_first(messages), MergeOutcome.DUPLICATE

        match = self.find_optimistic_match(messages, incoming)
        if match is not None:
            logger.debug(f"Message {incoming.id} replaces optimistic {match.id}")
            remaining = [message for message in messages if message is not match]
            return sort_newest_first([*remaining, incoming]), MergeOutcome.REPLACED_OPTIMISTIC

        return insert_or_replace(messages, incoming), MergeOutcome.INSERTED

    def merge_page(self, messages: list[Message], page: Iterable[Message]) -> list[Message]:
        """Merge a history page (no optimistic matching)."""
        return merge_all(messages, page)

    def make_optimistic(
        self,
        thread_id: str,
        text: str | None,
        scope: str | None = None,
        metadata: Any = None,
        message_type: MessageType = MessageType.CHAT,
        participant_id: str | None = None,
        direction: MessageDirection = MessageDirection.INCOMING,
    ) -> Message:
        """
        Synthesize the local copy of a message about to be sent.

        ``direction`` is the direction the server will echo for messages from
        the console user, which is Incoming from the thread's point of view.
        """
        return Message(
            id=self.next_temp_id(),
            thread_id=thread_id,
            direction=direction,
            message_type=message_type,
            text=text,
            scope=scope,
            metadata=metadata,
            participant_id=participant_id,
            status="pending",
            created_at=self._clock(),
        )

    def add_optimistic(self, messages: list[Message], optimistic: Message) -> list[Message]:
        if not optimistic.is_optimistic:
            raise ValueError(f"Message {optimistic.id} is not optimistic")
        return insert_or_replace(messages, optimistic)
