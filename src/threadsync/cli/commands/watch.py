"""
Follow a thread live.

Prints the first history page, then every message pushed on the thread's
stream. Handover messages trigger a (debounced) refresh of the thread's
metadata, which is printed when it changes.

Usage:
    threadsync watch THREAD_ID
    threadsync watch THREAD_ID --scope billing --duration 60
    threadsync watch THREAD_ID --no-topic
"""

import asyncio
import sys

import click
import httpx
from loguru import logger

from ...models import Thread
from ...services.conversation.controller import ConversationController
from ...services.conversation.handover import HandoverRefresher
from ...services.conversation.scope import ScopeSelection
from ...services.conversation.threads import ThreadDirectory
from ...services.messaging.client import MessagingAPIError, MessagingClient
from ..common import agent_option, format_message, resolve_agent, resolve_scope, scope_options


class MessagePrinter:
    """on_change callback that echoes each visible message once, oldest first."""

    def __init__(self, echo=click.echo):
        self.echo = echo
        self.printed: set[str] = set()

    def __call__(self, controller: ConversationController) -> None:
        for message in reversed(controller.visible_messages):
            if message.is_optimistic or message.id in self.printed:
                continue
            self.printed.add(message.id)
            self.echo(format_message(message))


@click.command(name="watch")
@click.argument("thread_id")
@agent_option
@scope_options
@click.option("--duration", "-d", type=float, default=None, help="Stop after N seconds")
def watch(
    thread_id: str,
    agent: str | None,
    scope: str | None,
    no_topic: bool,
    duration: float | None,
):
    """Print a thread's history and follow its live stream."""
    agent = resolve_agent(agent)
    selection = resolve_scope(scope, no_topic)
    try:
        asyncio.run(_watch(agent, thread_id, selection, duration))
    except KeyboardInterrupt:
        click.echo("Stopped")
    except (MessagingAPIError, httpx.HTTPError) as e:
        logger.error(f"Watch failed: {e}")
        sys.exit(1)


async def _watch(agent: str, thread_id: str, selection: ScopeSelection, duration: float | None):
    async with MessagingClient.from_settings() as client:
        directory = ThreadDirectory(client, agent)
        thread = await directory.find_thread(thread_id)
        if thread is None:
            logger.warning(f"Thread {thread_id} not in the thread list of {agent}; watching anyway")
            thread = Thread(id=thread_id, agent=agent)

        controller = ConversationController(
            client,
            agent=agent,
            on_change=MessagePrinter(),
            on_stream_error=lambda e: click.echo(f"Stream error: {e}", err=True),
        )

        def thread_refreshed(updated: Thread) -> None:
            controller.apply_thread_update(updated)
            click.echo(f"-- thread {updated.id} now {updated.workflow_type} ({updated.status or 'active'})")

        controller.on_handover_detected = HandoverRefresher(
            directory.find_thread, on_refreshed=thread_refreshed
        )

        async with controller:
            click.echo(f"Watching {thread.id} ({selection.label()})")
            await controller.select_thread(thread, selection)
            if controller.error:
                click.echo(controller.error, err=True)
            try:
                await asyncio.wait_for(controller.stream.wait_closed(), timeout=duration)
            except asyncio.TimeoutError:
                pass


def register_command(parent_group):
    """Register watch command with parent CLI group."""
    parent_group.add_command(watch)
