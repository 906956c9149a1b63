"""
Live push-stream session.

State machine:

    IDLE ──start()──> CONNECTING ──first event──> OPEN
                          │                         │
                          └──── stop() / error / server close ───> CLOSED

One StreamSession holds at most one subscription. ``start()`` always stops
the previous subscription first, whatever thread it was for, and only then
opens the new one. Every subscription runs in its own asyncio task; task
cancellation is the cancellation signal.

Each run is stamped with a generation number. Dispatch checks the stamp
before touching the callback, so an event that was already in flight when
the session was superseded is dropped instead of landing in the wrong
thread's store.

Event handling:
- connected / heartbeat: liveness only (last_event_at)
- Chat / Data / Handoff: payload parsed as Message, passed to on_message
- anything else: logged and ignored

Errors:
- cancellation (stop / supersede): swallowed
- any error raised by a run that has already been superseded: swallowed
- an error while the run is current: state CLOSED, passed to on_error, no
  retry (recovery is a manual refresh)
"""

import asyncio
from collections.abc import Callable
from contextlib import aclosing
from datetime import datetime
from enum import Enum
from typing import Any, TYPE_CHECKING

from loguru import logger
from pydantic import ValidationError

from ...models import Message
from ...utils.date_utils import utc_now
from ..messaging.events import CONNECTED_EVENT, HEARTBEAT_EVENT, StreamEvent

if TYPE_CHECKING:
    from ..messaging.client import MessagingClient


class StreamState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class StreamSession:
    """
    Owns the single live subscription of a controller.

    Attributes:
        state: Current StreamState
        thread_id: Thread of the current (or last) subscription
        generation: Incremented on every start/stop
        last_event_at: When the last event (of any kind) arrived
        last_error: Error that closed the last subscription, if any
    """

    def __init__(
        self,
        client: "MessagingClient",
        on_message: Callable[[Message], Any],
        on_error: Callable[[Exception], Any] | None = None,
        heartbeat_seconds: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.on_message = on_message
        self.on_error = on_error
        self.heartbeat_seconds = heartbeat_seconds
        self.state = StreamState.IDLE
        self.thread_id: str | None = None
        self.generation = 0
        self.last_event_at: datetime | None = None
        self.last_error: Exception | None = None
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._opened = asyncio.Event()

    @property
    def is_active(self) -> bool:
        return self.state in (StreamState.CONNECTING, StreamState.OPEN)

    async def start(self, thread_id: str) -> None:
        """Stop any current subscription, then subscribe to ``thread_id``.

        When starts overlap, the most recent call wins.
        """
        if not thread_id:
            logger.warning("Cannot start streaming: no thread ID provided")
            return

        self.generation += 1
        generation = self.generation
        await self._cancel_current()
        if generation != self.generation:
            logger.debug(f"Stream start for {thread_id} superseded before it subscribed")
            return

        self.thread_id = thread_id
        self.state = StreamState.CONNECTING
        self.last_error = None
        self.last_event_at = None
        self._opened.clear()
        logger.info(f"Starting message stream for thread: {thread_id}")
        self._task = asyncio.create_task(
            self._run(thread_id, generation), name=f"threadsync-stream-{thread_id}"
        )

    async def stop(self) -> None:
        """Cancel the current subscription. Safe to call repeatedly."""
        self.generation += 1
        await self._cancel_current()
        if self.state != StreamState.IDLE:
            self.state = StreamState.CLOSED

    async def _cancel_current(self) -> None:
        task = self._task
        self._task = None

        if task is not None and not task.done():
            logger.info(f"Stopping message stream for thread: {self.thread_id}")
            task.cancel()
            if task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def wait_closed(self) -> None:
        """Wait until the current subscription ends (server close, error or stop)."""
        task = self._task
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def wait_open(self, timeout: float | None = None) -> bool:
        """
        Wait for the first event of the current subscription.

        Returns:
            True once OPEN, False on timeout or if the run ended first
        """
        task = self._task
        if task is None:
            return self.state == StreamState.OPEN
        opened = asyncio.ensure_future(self._opened.wait())
        try:
            await asyncio.wait({opened, task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            opened.cancel()
        return self.state == StreamState.OPEN

    async def _run(self, thread_id: str, generation: int) -> None:
        try:
            events = self.client.stream_thread_events(
                thread_id, heartbeat_seconds=self.heartbeat_seconds
            )
            async with aclosing(events):
                async for event in events:
                    if generation != self.generation:
                        logger.debug(f"Dropping event from superseded stream for thread {thread_id}")
                        return
                    self._dispatch(event, thread_id)
        except asyncio.CancelledError:
            logger.debug(f"Message stream cancelled for thread: {thread_id}")
            raise
        except Exception as e:
            if generation != self.generation:
                logger.debug(f"Ignoring error from superseded stream for thread {thread_id}: {e}")
                return
            logger.error(f"Error in message stream for thread {thread_id}: {e}")
            self.state = StreamState.CLOSED
            self.last_error = e
            if self.on_error is not None:
                self.on_error(e)
            return

        if generation == self.generation:
            logger.info(f"Message stream closed by server for thread: {thread_id}")
            self.state = StreamState.CLOSED

    def _dispatch(self, event: StreamEvent, thread_id: str) -> None:
        self.last_event_at = self._clock()
        if self.state == StreamState.CONNECTING:
            self.state = StreamState.OPEN
            self._opened.set()

        if event.event == CONNECTED_EVENT:
            logger.info(f"[stream] Connection established for thread: {thread_id}")
        elif event.event == HEARTBEAT_EVENT:
            pass
        elif event.is_message:
            try:
                message = event.to_message()
            except (ValueError, ValidationError) as e:
                logger.warning(f"[stream] Skipping malformed {event.event} event: {e}")
                return
            logger.debug(f"[stream] Received message: {event.event} {message.id}")
            self.on_message(message)
        else:
            logger.debug(f"[stream] Ignoring unknown event '{event.event}'")
