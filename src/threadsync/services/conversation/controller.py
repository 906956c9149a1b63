"""
ConversationController - keeps one thread's message list in sync.

The controller owns the state of the current selection (thread + topic) and
wires the three message sources into a single sorted list:

    select_thread()
        └─ StreamSession.stop()            (awaited)
        └─ clear store, reset detector
        └─ Paginator.load_first_page()     → Reconciler.merge_page
        └─ StreamSession.start()           → Reconciler.merge_streamed
    send_message()
        └─ Reconciler.make_optimistic      (inserted before the POST)
        └─ MessagingClient.send_message    (echo arrives on the stream)

Design Pattern:
- Every store mutation is a synchronous swap of ``self.messages`` for a new
  list, so readers never see a half-applied merge.
- ``generation`` is bumped on every selection change. Async work captures it
  before awaiting and discards its result if it changed meanwhile.
- HandoverDetector runs after every mutation and emits
  ``on_handover_detected(thread_id)``. Debouncing is the consumer's job
  (see HandoverRefresher).

Error Handling:
- Pagination failures are stored on ``error`` and reported to ``on_error``.
- Stream failures are reported to ``on_stream_error``; ``refresh()`` recovers.
- Send failures propagate to the caller.

Usage:
    async with MessagingClient.from_settings() as client:
        controller = ConversationController(
            client,
            agent="Support Agent",
            on_change=lambda c: render(c.visible_messages),
        )
        await controller.select_thread(thread)
        await controller.send_message("Hello")
        ...
        await controller.close()
"""

import asyncio
import inspect
from collections.abc import Callable
from datetime import datetime
from typing import Any, TYPE_CHECKING

from loguru import logger

from ...models import Message, MessageType, Thread
from ...settings import settings
from ...utils.date_utils import utc_now
from .handover import HandoverDetector
from .indicator import ReplyIndicator, ReplyPhase, is_message_recent
from .paginator import Paginator
from .reconciler import MergeOutcome, Reconciler
from .scope import UNSET, ScopeSelection, filter_messages
from .stream import StreamSession, StreamState

if TYPE_CHECKING:
    from ..messaging.client import MessagingClient


class ConversationController:
    """
    Orchestrates history, live stream and local sends for one selection.

    Attributes:
        thread: Selected thread (None when nothing is selected)
        selection: Topic selection
        messages: Every message known for the thread, newest first
        is_loading: First page is being fetched
        error: User-facing message for the last pagination failure
        last_update_time: created_at of the newest message seen
        generation: Bumped on every selection change
    """

    def __init__(
        self,
        client: "MessagingClient",
        agent: str | None = None,
        on_change: Callable[["ConversationController"], Any] | None = None,
        on_handover_detected: Callable[[str], Any] | None = None,
        on_stream_error: Callable[[Exception], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        page_size: int | None = None,
        reconciler: Reconciler | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.client = client
        self.agent = agent or settings.messaging.agent
        self.on_change = on_change
        self.on_handover_detected = on_handover_detected
        self.on_stream_error = on_stream_error
        self.on_error = on_error
        self.page_size = page_size or settings.conversation.message_page_size
        self.reconciler = reconciler or Reconciler(clock=clock)
        self.detector = HandoverDetector(on_handover=self._handover_detected, clock=clock)
        self.indicator = ReplyIndicator(clock=clock)
        self.stream = StreamSession(
            client,
            on_message=self._on_stream_message,
            on_error=self._on_stream_error,
            clock=clock,
        )
        self._clock = clock

        self.thread: Thread | None = None
        self.selection = ScopeSelection.unfiltered()
        self.messages: list[Message] = []
        self.paginator: Paginator[Message] | None = None
        self.is_loading = False
        self.error: str | None = None
        self.last_update_time: datetime | None = None
        self.generation = 0
        self._background: set[asyncio.Task] = set()

    async def __aenter__(self) -> "ConversationController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # =========================================================================
    # VIEW STATE
    # =========================================================================

    @property
    def visible_messages(self) -> list[Message]:
        """Messages of the selected topic, newest first."""
        return filter_messages(self.messages, self.selection)

    @property
    def has_more(self) -> bool:
        return self.paginator is not None and self.paginator.has_more

    @property
    def is_loading_more(self) -> bool:
        return self.paginator is not None and self.paginator.is_loading and not self.is_loading

    @property
    def stream_state(self) -> StreamState:
        return self.stream.state

    def reply_phase(self, now: datetime | None = None) -> ReplyPhase:
        return self.indicator.phase(now)

    def is_recent(self, message: Message, now: datetime | None = None) -> bool:
        return is_message_recent(message, now or self._clock())

    # =========================================================================
    # SELECTION
    # =========================================================================

    async def select_thread(self, thread: Thread | None, scope: Any = UNSET) -> None:
        """
        Switch to ``thread`` (None deselects) with the given topic selection.

        Args:
            thread: Thread to show
            scope: ScopeSelection or raw value (UNSET, None, "" or a name)
        """
        selection = ScopeSelection.from_value(scope)
        await self._switch(thread, selection)

    async def select_scope(self, scope: Any) -> None:
        """Change the topic selection of the current thread."""
        selection = ScopeSelection.from_value(scope)
        if selection == self.selection and self.thread is not None:
            return
        await self._switch(self.thread, selection)

    async def refresh(self) -> None:
        """Reload history and reopen the stream for the current selection."""
        logger.info(f"Refreshing thread {self.thread.id if self.thread else None}")
        await self._switch(self.thread, self.selection)

    async def _switch(self, thread: Thread | None, selection: ScopeSelection) -> None:
        self.generation += 1
        generation = self.generation
        await self.stream.stop()
        if generation != self.generation:
            return

        self.thread = thread
        self.selection = selection
        self.messages = []
        self.error = None
        self.last_update_time = thread.updated_at if thread else None
        self.detector.reset()
        self.indicator.clear()

        if thread is None:
            self.paginator = None
            self._notify_change()
            return

        logger.info(f"Selected thread {thread.id} ({selection.label()})")
        paginator: Paginator[Message] = Paginator(
            lambda page, size: self.client.get_messages(thread.id, page, size, scope=selection),
            self.page_size,
            first_page=1,
            name="messages",
        )
        self.paginator = paginator
        self.is_loading = True
        self._notify_change()

        try:
            result = await paginator.load_first_page()
        except Exception as e:
            if generation != self.generation:
                return
            logger.error(f"Error loading messages for thread {thread.id}: {e}")
            self.is_loading = False
            self.messages = []
            self.error = "Failed to load messages."
            self._emit(self.on_error, e)
        else:
            if generation != self.generation:
                logger.debug(f"Discarding stale first page for thread {thread.id}")
                return
            self.is_loading = False
            self._apply(self.reconciler.merge_page(self.messages, result.records))

        self._notify_change()
        await self.stream.start(thread.id)

    async def load_more(self) -> bool:
        """
        Load the next page of older messages.

        Returns:
            True if a page was fetched and merged
        """
        paginator = self.paginator
        thread = self.thread
        if paginator is None or thread is None:
            return False

        generation = self.generation
        try:
            result = await paginator.load_next_page()
        except Exception as e:
            if generation != self.generation:
                return False
            logger.error(f"Error loading more messages for thread {thread.id}: {e}")
            self.error = "Failed to load more messages."
            self._emit(self.on_error, e)
            self._notify_change()
            return False

        if result is None:
            return False
        if generation != self.generation:
            logger.debug(f"Discarding stale page {result.page} for thread {thread.id}")
            return False

        self.error = None
        self._apply(self.reconciler.merge_page(self.messages, result.records))
        self._notify_change()
        return True

    def apply_thread_update(self, thread: Thread) -> None:
        """Replace the current thread's metadata (e.g. after a handover)."""
        if self.thread is None or self.thread.id != thread.id:
            logger.debug(f"Ignoring update for unselected thread {thread.id}")
            return
        self.thread = thread
        self._notify_change()

    # =========================================================================
    # SENDING
    # =========================================================================

    async def send_message(
        self,
        content: str | None,
        metadata: Any = None,
        message_type: MessageType = MessageType.CHAT,
        scope: Any = UNSET,
    ) -> str:
        """
        Send a message to the current thread.

        The optimistic copy is inserted before the network call and retired
        when the streamed echo arrives.

        Args:
            content: Message text
            metadata: Optional data payload
            message_type: CHAT or DATA
            scope: Topic override; defaults to the current selection's topic

        Returns:
            Thread id returned by the server

        Raises:
            ValueError: No thread selected, or it lacks participant/workflow
            MessagingAPIError: The server rejected the send
        """
        thread = self.thread
        if thread is None:
            raise ValueError("No thread selected")
        if not thread.can_send:
            raise ValueError(f"Thread {thread.id} is missing participant_id or workflow_type")

        target_scope = self.selection.scope_value if scope is UNSET else scope
        optimistic = self.reconciler.make_optimistic(
            thread.id,
            content,
            scope=target_scope,
            metadata=metadata,
            message_type=message_type,
            participant_id=thread.participant_id,
        )
        self._apply(self.reconciler.add_optimistic(self.messages, optimistic))
        self.indicator.mark_sent(optimistic.created_at)
        self._notify_change()

        try:
            thread_id = await self.client.send_message(
                self.agent,
                thread.participant_id,
                thread.workflow_type,
                content,
                workflow_id=thread.workflow_id,
                metadata=metadata,
                scope=target_scope,
                thread_id=thread.id,
                message_type=message_type,
            )
        except Exception as e:
            logger.error(f"Error sending message to thread {thread.id}: {e}")
            self.indicator.clear()
            self._notify_change()
            raise

        logger.debug(f"Message sent to thread {thread_id} (optimistic {optimistic.id})")
        return thread_id

    async def start_thread(
        self,
        participant_id: str,
        workflow_type: str,
        content: str,
        workflow_id: str | None = None,
        scope: str | None = None,
    ) -> Thread:
        """
        Start a new thread by sending its first message, then select it.

        Returns:
            The new thread
        """
        thread_id = await self.client.send_message(
            self.agent,
            participant_id,
            workflow_type,
            content,
            workflow_id=workflow_id,
            scope=scope,
        )
        logger.info(f"Started thread {thread_id} for participant {participant_id}")
        thread = Thread(
            id=thread_id,
            participant_id=participant_id,
            workflow_type=workflow_type,
            workflow_id=workflow_id,
            agent=self.agent,
            updated_at=self._clock(),
        )
        await self.select_thread(thread)
        return thread

    async def delete_thread(self) -> None:
        """Delete the current thread on the server and deselect it."""
        thread = self.thread
        if thread is None:
            raise ValueError("No thread selected")
        await self.client.delete_thread(thread.id)
        await self.select_thread(None)

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    async def close(self) -> None:
        """Stop the stream and drop all per-thread state."""
        await self.stream.stop()
        self.generation += 1
        self.messages = []
        self.paginator = None
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _apply(self, messages: list[Message]) -> None:
        """Swap in a new message list and run handover detection."""
        self.messages = messages
        real = [message for message in messages if not message.is_optimistic]
        if real:
            newest = real[0].created_at
            if self.last_update_time is None or newest > self.last_update_time:
                self.last_update_time = newest
        if self.thread is not None:
            self.detector.check(self.thread.id, messages)

    def _on_stream_message(self, message: Message) -> None:
        thread = self.thread
        if thread is None:
            return
        if message.thread_id is not None and message.thread_id != thread.id:
            logger.warning(f"Dropping message {message.id} for thread {message.thread_id}; selected {thread.id}")
            return

        messages, outcome = self.reconciler.merge_streamed(self.messages, message)
        if outcome == MergeOutcome.DUPLICATE:
            return
        self.indicator.observe(message)
        self._apply(messages)
        self._notify_change()

    def _on_stream_error(self, error: Exception) -> None:
        self._emit(self.on_stream_error, error)
        self._notify_change()

    def _handover_detected(self, thread_id: str) -> None:
        self._emit(self.on_handover_detected, thread_id)

    def _notify_change(self) -> None:
        self._emit(self.on_change, self)

    def _emit(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        """Invoke a notification callback; coroutine results run as tasks."""
        if callback is None:
            return
        try:
            result = callback(*args)
        except Exception as e:
            logger.exception(f"Notification callback {getattr(callback, '__name__', callback)} failed: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._background.add(task)
            task.add_done_callback(self._background.discard)
