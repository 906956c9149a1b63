"""
Unit tests for ConversationController.

The controller runs against SimulatedMessagingClient, so history paging,
the push stream and sends all go through real asyncio scheduling.

Tests cover:
1. Thread selection (history + stream) and scope selection
2. Optimistic sends and their reconciliation
3. Error handling for pagination, sends and the stream
4. Stale-response and stream-supersession guards
5. Handover notification and debounced refresh
"""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio

from threadsync.models import Message, MessageDirection, Thread
from threadsync.services.conversation.controller import ConversationController
from threadsync.services.conversation.handover import HandoverRefresher
from threadsync.services.conversation.indicator import ReplyPhase
from threadsync.services.conversation.stream import StreamState
from threadsync.services.conversation.threads import ThreadDirectory
from threadsync.services.messaging.client import MessagingAPIError
from threadsync.services.messaging.simulator import DEMO_AGENT, SimulatedMessagingClient
from threadsync.utils.date_utils import utc_now


async def settle(seconds: float = 0.05):
    await asyncio.sleep(seconds)


def make_thread(thread_id: str) -> Thread:
    return Thread(
        id=thread_id,
        participant_id="user-1",
        workflow_type="Support:Chat",
        agent=DEMO_AGENT,
        updated_at=utc_now(),
    )


class FailingHistoryClient(SimulatedMessagingClient):
    """Fails history pages listed in fail_pages."""

    def __init__(self, fail_pages, **kwargs):
        super().__init__(**kwargs)
        self.fail_pages = set(fail_pages)

    async def get_messages(self, thread_id, page, page_size, scope=None):
        if page in self.fail_pages:
            raise MessagingAPIError(500, "history unavailable")
        return await super().get_messages(thread_id, page, page_size, scope)


class GatedHistoryClient(SimulatedMessagingClient):
    """History fetches for a thread wait until its gate is opened."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gates: dict[str, asyncio.Event] = {}

    async def get_messages(self, thread_id, page, page_size, scope=None):
        gate = self.gates.get(thread_id)
        if gate is not None:
            await gate.wait()
        return await super().get_messages(thread_id, page, page_size, scope)


class RejectingSendClient(SimulatedMessagingClient):
    async def send_message(self, *args, **kwargs):
        raise MessagingAPIError(400, "workflow not found")


@pytest_asyncio.fixture
async def demo_client():
    client = SimulatedMessagingClient.with_demo_thread(reply_texts=[])
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def controller(demo_client):
    controller = ConversationController(demo_client, agent=DEMO_AGENT)
    yield controller
    await controller.close()


@pytest.mark.asyncio
class TestSelection:
    """Selecting threads and topics."""

    async def test_select_thread_loads_history_and_streams(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0])

        assert len(controller.messages) == 6
        stamps = [m.created_at for m in controller.messages]
        assert stamps == sorted(stamps, reverse=True)
        assert not controller.has_more
        assert not controller.is_loading
        assert controller.error is None
        assert not controller.is_loading_more
        assert all(controller.is_recent(m) is False for m in controller.messages)
        assert await controller.stream.wait_open(timeout=1)
        assert controller.stream_state == StreamState.OPEN

    async def test_select_named_scope(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0], scope="billing")
        assert len(controller.visible_messages) == 3
        assert all(m.scope == "billing" for m in controller.visible_messages)

    async def test_select_scope_reloads(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0])
        await controller.select_scope(None)

        assert len(controller.visible_messages) == 3
        assert all(m.scope is None for m in controller.visible_messages)
        history_calls = [c for c in demo_client.calls if c[0] == "get_messages"]
        assert len(history_calls) == 2

    async def test_on_change_notified(self, demo_client):
        changes = []
        controller = ConversationController(demo_client, agent=DEMO_AGENT, on_change=changes.append)
        await controller.select_thread(demo_client.threads[0])
        assert changes
        assert changes[-1] is controller
        await controller.close()

    async def test_deselect(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0])
        await controller.select_thread(None)
        assert controller.thread is None
        assert controller.messages == []
        assert controller.stream_state == StreamState.CLOSED

    async def test_load_more(self):
        client = SimulatedMessagingClient(threads=[make_thread("t-1")], reply_texts=[])
        base = utc_now() - timedelta(hours=1)
        for index in range(20):
            client.add_history(
                Message(id=f"m-{index}", thread_id="t-1", text=str(index), created_at=base + timedelta(seconds=index))
            )
        controller = ConversationController(client, agent=DEMO_AGENT, page_size=15)

        await controller.select_thread(client.threads[0])
        assert len(controller.messages) == 15
        assert controller.has_more

        assert await controller.load_more()
        assert len(controller.messages) == 20
        assert not controller.has_more
        assert not await controller.load_more()
        await controller.close()


@pytest.mark.asyncio
class TestSending:
    """Optimistic sends."""

    async def test_optimistic_entry_replaced_by_echo(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0])
        await controller.stream.wait_open(timeout=1)

        thread_id = await controller.send_message("Where is my refund?")
        assert thread_id == "demo-thread"
        assert any(m.is_optimistic for m in controller.messages)

        await settle()
        matching = [m for m in controller.messages if m.text == "Where is my refund?"]
        assert len(matching) == 1
        assert not matching[0].is_optimistic
        assert controller.is_recent(matching[0])
        assert len(controller.messages) == 7

    async def test_send_uses_selected_scope(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0], scope="billing")
        await controller.send_message("Invoice question")

        sent = [args for name, args in demo_client.calls if name == "send_message"]
        assert sent[-1]["scope"] == "billing"
        assert sent[-1]["thread_id"] == "demo-thread"

    async def test_reply_clears_indicator(self):
        client = SimulatedMessagingClient.with_demo_thread(reply_texts=["On it"], reply_delay_ms=10)
        controller = ConversationController(client, agent=DEMO_AGENT)
        await controller.select_thread(client.threads[0])
        await controller.stream.wait_open(timeout=1)

        await controller.send_message("Hello")
        assert controller.reply_phase() == ReplyPhase.SENDING

        await settle(0.1)
        assert controller.reply_phase() == ReplyPhase.IDLE
        assert any(m.text == "On it" for m in controller.messages)
        await controller.close()
        await client.aclose()

    async def test_send_without_thread_raises(self, controller):
        with pytest.raises(ValueError):
            await controller.send_message("hello")
        assert controller.messages == []

    async def test_send_to_incomplete_thread_raises(self, controller, demo_client):
        demo_client.threads.append(Thread(id="bare", agent=DEMO_AGENT))
        await controller.select_thread(demo_client.threads[-1])

        with pytest.raises(ValueError):
            await controller.send_message("hello")
        assert not any(m.is_optimistic for m in controller.messages)

    async def test_send_failure_propagates_and_keeps_optimistic(self):
        client = RejectingSendClient.with_demo_thread(reply_texts=[])
        controller = ConversationController(client, agent=DEMO_AGENT)
        await controller.select_thread(client.threads[0])

        with pytest.raises(MessagingAPIError):
            await controller.send_message("hello")
        assert sum(1 for m in controller.messages if m.is_optimistic) == 1
        assert controller.reply_phase() == ReplyPhase.IDLE
        await controller.close()

    async def test_start_thread_selects_new_thread(self, controller, demo_client):
        thread = await controller.start_thread("user-9", "Support:Chat", "First message")

        assert controller.thread is thread
        assert thread.id.startswith("thread-")
        assert any(m.text == "First message" for m in controller.messages)

    async def test_delete_thread(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0])
        await controller.delete_thread()

        assert controller.thread is None
        assert ("delete_thread", {"thread_id": "demo-thread"}) in demo_client.calls


@pytest.mark.asyncio
class TestErrors:
    """Pagination and stream failures stay inside the controller."""

    async def test_first_page_failure_clears_list(self):
        client = FailingHistoryClient({1}, threads=[make_thread("t-1")], reply_texts=[])
        errors = []
        controller = ConversationController(client, agent=DEMO_AGENT, on_error=errors.append)

        await controller.select_thread(client.threads[0])

        assert controller.messages == []
        assert not controller.has_more
        assert controller.error == "Failed to load messages."
        assert len(errors) == 1
        await controller.close()

    async def test_load_more_failure_keeps_messages(self):
        client = FailingHistoryClient({2}, threads=[make_thread("t-1")], reply_texts=[])
        base = utc_now() - timedelta(hours=1)
        for index in range(20):
            client.add_history(Message(id=f"m-{index}", thread_id="t-1", created_at=base + timedelta(seconds=index)))
        errors = []
        controller = ConversationController(client, agent=DEMO_AGENT, page_size=15, on_error=errors.append)

        await controller.select_thread(client.threads[0])
        assert not await controller.load_more()

        assert len(controller.messages) == 15
        assert controller.error == "Failed to load more messages."
        assert len(errors) == 1
        await controller.close()

    async def test_stream_error_reported(self, demo_client):
        stream_errors = []
        controller = ConversationController(demo_client, agent=DEMO_AGENT, on_stream_error=stream_errors.append)

        async def broken_stream(thread_id, heartbeat_seconds=None):
            raise ConnectionError("stream dropped")
            yield  # pragma: no cover

        demo_client.stream_thread_events = broken_stream
        await controller.select_thread(demo_client.threads[0])
        await controller.stream.wait_closed()

        assert [str(e) for e in stream_errors] == ["stream dropped"]
        assert controller.stream_state == StreamState.CLOSED
        assert len(controller.messages) == 6

        del demo_client.stream_thread_events
        await controller.refresh()
        assert await controller.stream.wait_open(timeout=1)
        assert len(controller.messages) == 6
        await controller.close()


@pytest.mark.asyncio
class TestStaleGuards:
    """Responses for a previous selection never land in the current one."""

    async def test_stale_first_page_discarded(self):
        client = GatedHistoryClient(threads=[make_thread("t-a"), make_thread("t-b")], reply_texts=[])
        client.add_history(Message(id="a-1", thread_id="t-a", text="from a"))
        client.add_history(Message(id="b-1", thread_id="t-b", text="from b"))
        client.gates["t-a"] = asyncio.Event()
        controller = ConversationController(client, agent=DEMO_AGENT)

        select_a = asyncio.create_task(controller.select_thread(client.threads[0]))
        await settle(0.01)
        await controller.select_thread(client.threads[1])
        client.gates["t-a"].set()
        await select_a

        assert [m.id for m in controller.messages] == ["b-1"]
        assert controller.stream.thread_id == "t-b"
        await controller.close()

    async def test_overlapping_selections_latest_wins(self):
        threads = [make_thread("t-a"), make_thread("t-b"), make_thread("t-c")]
        client = SimulatedMessagingClient(threads=threads, reply_texts=[])
        for thread in threads:
            client.add_history(Message(id=f"{thread.id}-1", thread_id=thread.id, text=thread.id))
        controller = ConversationController(client, agent=DEMO_AGENT)
        await controller.select_thread(threads[0])
        assert await controller.stream.wait_open(timeout=1)

        select_b = asyncio.create_task(controller.select_thread(threads[1]))
        await asyncio.sleep(0)
        select_c = asyncio.create_task(controller.select_thread(threads[2]))
        await asyncio.gather(select_b, select_c)

        assert controller.thread.id == "t-c"
        assert [m.id for m in controller.messages] == ["t-c-1"]
        assert controller.stream.thread_id == "t-c"
        assert await controller.stream.wait_open(timeout=1)
        await controller.close()

    async def test_no_events_from_previous_thread(self):
        client = SimulatedMessagingClient(threads=[make_thread("t-a"), make_thread("t-b")], reply_texts=[])
        controller = ConversationController(client, agent=DEMO_AGENT)

        await controller.select_thread(client.threads[0])
        await controller.stream.wait_open(timeout=1)
        await controller.select_thread(client.threads[1])
        await controller.stream.wait_open(timeout=1)

        await client.push(Message(id="a-late", thread_id="t-a", text="late"))
        await client.push(Message(id="b-live", thread_id="t-b", text="live"))
        await settle()

        assert [m.id for m in controller.messages] == ["b-live"]
        await controller.close()


@pytest.mark.asyncio
class TestHandover:
    """Handover notification and refresh."""

    async def test_handover_notifies_once(self, demo_client):
        detected = []
        controller = ConversationController(demo_client, agent=DEMO_AGENT, on_handover_detected=detected.append)
        await controller.select_thread(demo_client.threads[0])
        await controller.stream.wait_open(timeout=1)
        assert detected == []

        handover = Message(id="h-new", thread_id="demo-thread", direction=MessageDirection.HANDOVER, text="Human joined")
        await demo_client.push(handover)
        await demo_client.push(handover)
        await settle()

        assert detected == ["demo-thread"]
        await controller.close()

    async def test_two_handovers_refresh_thread_once(self, demo_client, clock):
        directory = ThreadDirectory(demo_client, DEMO_AGENT)
        controller = ConversationController(demo_client, agent=DEMO_AGENT)
        refresher = HandoverRefresher(
            directory.find_thread, on_refreshed=controller.apply_thread_update, clock=clock
        )
        controller.on_handover_detected = refresher
        await controller.select_thread(demo_client.threads[0])
        await controller.stream.wait_open(timeout=1)

        demo_client.threads[0] = demo_client.threads[0].model_copy(update={"status": "human"})
        await demo_client.push(Message(id="h-1", thread_id="demo-thread", direction=MessageDirection.HANDOVER))
        await settle()
        clock.advance(ms=1000)
        await demo_client.push(Message(id="h-2", thread_id="demo-thread", direction=MessageDirection.HANDOVER))
        await settle()

        refreshes = [c for c in demo_client.calls if c[0] == "get_threads"]
        assert len(refreshes) == 1
        assert controller.thread.status == "human"
        await controller.close()

    async def test_apply_thread_update_ignores_other_threads(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0])
        controller.apply_thread_update(Thread(id="other", status="human"))
        assert controller.thread.id == "demo-thread"
        assert controller.thread.status is None


@pytest.mark.asyncio
class TestClose:
    """Teardown."""

    async def test_close_stops_stream_and_clears(self, controller, demo_client):
        await controller.select_thread(demo_client.threads[0])
        await controller.stream.wait_open(timeout=1)
        await controller.close()

        assert controller.stream_state == StreamState.CLOSED
        assert controller.messages == []
        assert not controller.has_more
