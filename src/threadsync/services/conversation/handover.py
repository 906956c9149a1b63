"""
Handover detection.

A Handover message marks the conversation moving between automated and human
handling; when one arrives the thread's metadata (workflow, status) has
usually changed and should be re-fetched.

Two cooperating pieces:

HandoverDetector
    Runs after every change to the message list. Reports the newest Handover
    message that (a) has not been reported yet and (b) is younger than the
    recency window (60s). The window is what stops a freshly loaded history
    page from re-firing for handovers that happened long ago.

HandoverRefresher
    The consumer side. Refreshes thread metadata at most once per debounce
    interval (3s) and never runs two refreshes at once.

Both keep their registers (last handover id, last refresh time, in-flight
flag) as plain attributes and take an injectable clock, so tests can drive
them without sleeping.
"""

from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any

from loguru import logger

from ...models import Message, Thread
from ...settings import settings
from ...utils.date_utils import elapsed_ms, utc_now


class HandoverDetector:
    """
    Finds new, recent Handover messages.

    Attributes:
        last_processed_handover_id: Id of the last reported handover
        window_ms: Only handovers younger than this are reported
    """

    def __init__(
        self,
        on_handover: Callable[[str], Any] | None = None,
        window_ms: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.on_handover = on_handover
        self.window_ms = window_ms if window_ms is not None else settings.conversation.handover_window_ms
        self.last_processed_handover_id: str | None = None
        self._clock = clock

    def reset(self) -> None:
        self.last_processed_handover_id = None

    def candidates(self, messages: Iterable[Message], now: datetime | None = None) -> list[Message]:
        """
        Unreported handovers inside the window, newest first.

        A handover without a server timestamp is never a candidate: its
        created_at is the local parse time, not when the handover happened.
        """
        now = now or self._clock()
        found = []
        for message in messages:
            if not message.is_handover or message.id == self.last_processed_handover_id:
                continue
            if not message.has_timestamp:
                logger.debug(f"Ignoring handover {message.id} without a createdAt timestamp")
                continue
            if elapsed_ms(message.created_at, now) < self.window_ms:
                found.append(message)
        return sorted(found, key=lambda message: message.created_at, reverse=True)

    def check(
        self, thread_id: str, messages: Iterable[Message], now: datetime | None = None
    ) -> Message | None:
        """
        Report the newest new handover, if any.

        Returns:
            The handover message that was reported, or None
        """
        found = self.candidates(messages, now)
        if not found:
            return None

        latest = found[0]
        self.last_processed_handover_id = latest.id
        logger.info(f"Recent thread handover detected on {thread_id}: {latest.text!r}")
        if self.on_handover is not None:
            self.on_handover(thread_id)
        return latest


class HandoverRefresher:
    """
    Debounced thread-metadata refresh triggered by handovers.

    Attributes:
        debounce_ms: Minimum time between accepted refreshes
        last_refresh_at: When the last accepted refresh started
        is_refreshing: A refresh is in flight
    """

    def __init__(
        self,
        fetch_thread: Callable[[str], Awaitable[Thread | None]],
        on_refreshed: Callable[[Thread], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        debounce_ms: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.fetch_thread = fetch_thread
        self.on_refreshed = on_refreshed
        self.on_error = on_error
        self.debounce_ms = debounce_ms if debounce_ms is not None else settings.conversation.handover_debounce_ms
        self.last_refresh_at: datetime | None = None
        self.is_refreshing = False
        self._clock = clock

    async def __call__(self, thread_id: str) -> Thread | None:
        return await self.refresh(thread_id)

    async def refresh(self, thread_id: str) -> Thread | None:
        """
        Refresh metadata for ``thread_id`` unless debounced or busy.

        Returns:
            The refreshed thread, or None when skipped, not found or failed
        """
        if not thread_id:
            return None

        now = self._clock()
        if self.last_refresh_at is not None and elapsed_ms(self.last_refresh_at, now) < self.debounce_ms:
            logger.debug("Handover refresh debounced - too soon after last refresh")
            return None

        if self.is_refreshing:
            logger.debug("Handover refresh skipped - already processing a handover")
            return None

        self.is_refreshing = True
        self.last_refresh_at = now
        logger.info(f"Refreshing thread details after handover: {thread_id}")

        try:
            thread = await self.fetch_thread(thread_id)
            if thread is None:
                logger.warning(f"Thread {thread_id} not found while refreshing after handover")
                return None
            if self.on_refreshed is not None:
                self.on_refreshed(thread)
            return thread
        except Exception as e:
            logger.error(f"Error refreshing thread {thread_id} after handover: {e}")
            if self.on_error is not None:
                self.on_error(e)
            return None
        finally:
            self.is_refreshing = False
