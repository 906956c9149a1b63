"""
Messaging Simulator.

A programmatic stand-in for the messaging server that produces realistic
push-stream traffic. NOT a network mock at the HTTP layer - it implements
the same async methods as MessagingClient, so a ConversationController can
run against it unchanged.

Usage:
    from threadsync.services.messaging.simulator import SimulatedMessagingClient

    client = SimulatedMessagingClient.with_demo_thread()
    controller = ConversationController(client, agent="Demo Agent")
    await controller.select_thread(client.threads[0])

The simulator demonstrates:
1. Paginated history (newest first, 1-based pages)
2. connected + heartbeat liveness events
3. Echo of sent messages with a server id and server timestamp
4. Scripted agent replies
5. Handover control events
6. Topic (scope) summaries

This is useful for:
- Exercising the sync core without a running server
- Demonstrating stream reconciliation from the CLI
- Tests that need a backend with real async timing
"""

import asyncio
import itertools
from collections import defaultdict
from collections.abc import AsyncGenerator, AsyncIterator
from datetime import timedelta
from typing import Any, TYPE_CHECKING

from loguru import logger

from ...models import Message, MessageDirection, MessageType, Thread, TopicSummary
from ...utils.date_utils import utc_now
from .events import CONNECTED_EVENT, HEARTBEAT_EVENT, StreamEvent

if TYPE_CHECKING:
    from ..conversation.scope import ScopeSelection


# =============================================================================
# Demo Content
# =============================================================================

DEMO_AGENT = "Demo Agent"

DEMO_HISTORY = [
    ("Incoming", "Hi, I need help with my invoice.", None),
    ("Outgoing", "Sure. Can you share the invoice number?", None),
    ("Incoming", "It's INV-2041.", "billing"),
    ("Outgoing", "Thanks, looking it up now.", "billing"),
    ("Handover", "Conversation handed over to a human agent.", None),
    ("Outgoing", "Hello, this is Dana from billing.", "billing"),
]

DEMO_REPLIES = [
    "Got it, give me a moment.",
    "I've updated the record.",
    "Anything else I can help with?",
]


# =============================================================================
# Simulator Functions
# =============================================================================

async def stream_simulator_events(
    thread_id: str,
    replies: list[str] | None = None,
    delay_ms: int = 50,
    include_heartbeats: bool = True,
    include_handover: bool = True,
) -> AsyncGenerator[StreamEvent, None]:
    """
    Generate a scripted push-stream sequence for one thread.

    Events are yielded in a realistic order with configurable delays.

    Args:
        thread_id: Thread the messages belong to
        replies: Agent reply texts (defaults to DEMO_REPLIES)
        delay_ms: Delay between events in milliseconds
        include_heartbeats: Emit a heartbeat between replies
        include_handover: Finish with a Handoff event

    Yields:
        StreamEvent objects, starting with ``connected``
    """
    delay = delay_ms / 1000.0
    counter = itertools.count(1)

    yield StreamEvent(event=CONNECTED_EVENT, data={"threadId": thread_id})

    for text in replies if replies is not None else DEMO_REPLIES:
        if include_heartbeats:
            await asyncio.sleep(delay)
            yield StreamEvent(event=HEARTBEAT_EVENT)

        await asyncio.sleep(delay)
        message = Message(
            id=f"sim-{thread_id}-{next(counter)}",
            thread_id=thread_id,
            direction=MessageDirection.OUTGOING,
            message_type=MessageType.CHAT,
            text=text,
            created_at=utc_now(),
        )
        yield StreamEvent(event=MessageType.CHAT.value, data=message.model_dump(mode="json", by_alias=True))

    if include_handover:
        await asyncio.sleep(delay)
        handover = Message(
            id=f"sim-{thread_id}-{next(counter)}",
            thread_id=thread_id,
            direction=MessageDirection.HANDOVER,
            message_type=MessageType.HANDOFF,
            text="Conversation handed over.",
            created_at=utc_now(),
        )
        yield StreamEvent(event=MessageType.HANDOFF.value, data=handover.model_dump(mode="json", by_alias=True))


class SimulatedMessagingClient:
    """
    In-memory messaging backend with the MessagingClient interface.

    Sent messages are stored with a server id and echoed to every open
    stream for the thread, followed by an optional scripted agent reply.

    Attributes:
        threads: Known threads
        history: Messages per thread id
        calls: (method, args) log of every API call, in order
    """

    def __init__(
        self,
        threads: list[Thread] | None = None,
        reply_texts: list[str] | None = None,
        reply_delay_ms: int = 200,
        heartbeat_seconds: float = 15.0,
        echo_skew_ms: int = 150,
    ):
        self.threads: list[Thread] = list(threads or [])
        self.history: dict[str, list[Message]] = defaultdict(list)
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.reply_texts = list(reply_texts if reply_texts is not None else DEMO_REPLIES)
        self.reply_delay_ms = reply_delay_ms
        self.heartbeat_seconds = heartbeat_seconds
        self.echo_skew_ms = echo_skew_ms
        self._subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)
        self._ids = itertools.count(1)
        self._replies = itertools.cycle(self.reply_texts) if self.reply_texts else None
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def with_demo_thread(cls, thread_id: str = "demo-thread", **kwargs: Any) -> "SimulatedMessagingClient":
        """Client preloaded with one thread and a short scripted history."""
        now = utc_now()
        thread = Thread(
            id=thread_id,
            participant_id="demo-user",
            workflow_type="Demo:Support",
            workflow_id="demo-workflow",
            agent=DEMO_AGENT,
            created_at=now - timedelta(hours=1),
            updated_at=now,
        )
        client = cls(threads=[thread], **kwargs)
        start = now - timedelta(minutes=30)
        for index, (direction, text, scope) in enumerate(DEMO_HISTORY):
            direction_enum = MessageDirection(direction)
            client.add_history(
                Message(
                    id=client.next_id(),
                    thread_id=thread_id,
                    direction=direction_enum,
                    message_type=MessageType.HANDOFF if direction_enum == MessageDirection.HANDOVER else MessageType.CHAT,
                    text=text,
                    scope=scope,
                    created_at=start + timedelta(minutes=index * 2),
                )
            )
        return client

    def next_id(self) -> str:
        return f"srv-{next(self._ids)}"

    def add_history(self, message: Message) -> None:
        """Store a message without pushing it to streams."""
        self.history[message.thread_id or ""].append(message)

    async def push(self, message: Message) -> None:
        """Store a message and deliver it to every open stream of its thread."""
        self.add_history(message)
        event = StreamEvent(
            event=message.message_type.value,
            data=message.model_dump(mode="json", by_alias=True),
        )
        for queue in list(self._subscribers[message.thread_id or ""]):
            await queue.put(event)

    async def __aenter__(self) -> "SimulatedMessagingClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    # =========================================================================
    # MessagingClient interface
    # =========================================================================

    async def get_threads(
        self, agent: str, page: int | None = None, page_size: int | None = None
    ) -> list[Thread]:
        self.calls.append(("get_threads", {"agent": agent, "page": page, "page_size": page_size}))
        threads = [t for t in self.threads if t.agent in (None, agent)]
        threads.sort(key=lambda t: t.updated_at or t.created_at, reverse=True)
        if page is None or page_size is None:
            return threads
        start = page * page_size
        return threads[start:start + page_size]

    async def get_topics(
        self, thread_id: str, page: int | None = None, page_size: int | None = None
    ) -> list[TopicSummary]:
        self.calls.append(("get_topics", {"thread_id": thread_id, "page": page, "page_size": page_size}))
        grouped: dict[str | None, list[Message]] = defaultdict(list)
        for message in self.history[thread_id]:
            grouped[message.scope].append(message)
        topics = [
            TopicSummary(
                scope=scope,
                message_count=len(messages),
                last_message_at=max(m.created_at for m in messages),
            )
            for scope, messages in grouped.items()
        ]
        topics.sort(key=lambda t: t.last_message_at, reverse=True)
        if page is None or page_size is None:
            return topics
        start = (page - 1) * page_size
        return topics[start:start + page_size]

    async def get_messages(
        self,
        thread_id: str,
        page: int,
        page_size: int,
        scope: "ScopeSelection | None" = None,
    ) -> list[Message]:
        self.calls.append(("get_messages", {"thread_id": thread_id, "page": page, "page_size": page_size, "scope": scope}))
        messages = self.history[thread_id]
        if scope is not None:
            messages = [m for m in messages if scope.matches(m)]
        messages = sorted(messages, key=lambda m: m.created_at, reverse=True)
        start = (page - 1) * page_size
        return messages[start:start + page_size]

    async def send_message(
        self,
        agent: str | None,
        participant_id: str,
        workflow_type: str,
        content: str | None,
        workflow_id: str | None = None,
        metadata: Any = None,
        scope: str | None = None,
        thread_id: str | None = None,
        message_type: MessageType = MessageType.CHAT,
    ) -> str:
        self.calls.append(("send_message", {"agent": agent, "thread_id": thread_id, "content": content, "scope": scope}))
        if thread_id is None:
            thread_id = f"thread-{next(self._ids)}"
            self.threads.append(
                Thread(
                    id=thread_id,
                    participant_id=participant_id,
                    workflow_type=workflow_type,
                    workflow_id=workflow_id,
                    agent=agent,
                    updated_at=utc_now(),
                )
            )

        echo = Message(
            id=self.next_id(),
            thread_id=thread_id,
            direction=MessageDirection.INCOMING,
            message_type=message_type,
            text=content,
            metadata=metadata,
            scope=scope,
            participant_id=participant_id,
            created_at=utc_now() + timedelta(milliseconds=self.echo_skew_ms),
        )
        await self.push(echo)

        if self._replies is not None and message_type == MessageType.CHAT:
            task = asyncio.create_task(self._reply(thread_id, next(self._replies), scope))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return thread_id

    async def _reply(self, thread_id: str, text: str, scope: str | None) -> None:
        await asyncio.sleep(self.reply_delay_ms / 1000.0)
        await self.push(
            Message(
                id=self.next_id(),
                thread_id=thread_id,
                direction=MessageDirection.OUTGOING,
                message_type=MessageType.CHAT,
                text=text,
                scope=scope,
                created_at=utc_now(),
            )
        )

    async def delete_thread(self, thread_id: str) -> None:
        self.calls.append(("delete_thread", {"thread_id": thread_id}))
        self.threads = [t for t in self.threads if t.id != thread_id]
        self.history.pop(thread_id, None)

    async def stream_thread_events(
        self, thread_id: str, heartbeat_seconds: int | None = None
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(("stream_thread_events", {"thread_id": thread_id}))
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[thread_id].append(queue)
        interval = heartbeat_seconds or self.heartbeat_seconds
        logger.debug(f"Simulated stream opened for thread {thread_id}")
        try:
            yield StreamEvent(event=CONNECTED_EVENT, data={"threadId": thread_id})
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=interval)
                except asyncio.TimeoutError:
                    yield StreamEvent(event=HEARTBEAT_EVENT)
                    continue
                yield event
        finally:
            self._subscribers[thread_id].remove(queue)
            logger.debug(f"Simulated stream closed for thread {thread_id}")
