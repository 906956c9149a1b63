"""
Run the sync core against the in-memory simulator.

Selects the demo thread, sends a few messages and prints the reconciled
message list, showing optimistic entries being replaced by their echoes and
the scripted agent replies arriving on the stream.

Usage:
    threadsync simulate
    threadsync simulate -m "Where is my refund?" -m "Thanks" --scope billing
    threadsync simulate --script          # print raw stream events
"""

import asyncio

import click
from loguru import logger

from ...services.conversation.controller import ConversationController
from ...services.conversation.handover import HandoverRefresher
from ...services.conversation.scope import ScopeSelection
from ...services.conversation.threads import ThreadDirectory
from ...services.messaging.events import format_stream_event
from ...services.messaging.simulator import (
    DEMO_AGENT,
    SimulatedMessagingClient,
    stream_simulator_events,
)
from ..common import format_message, resolve_scope, scope_options
from .watch import MessagePrinter


@click.command(name="simulate")
@click.option(
    "--message",
    "-m",
    "messages",
    multiple=True,
    help="Message to send (repeatable)",
)
@scope_options
@click.option("--delay-ms", default=50, show_default=True, help="Simulated agent reply delay")
@click.option("--script", is_flag=True, help="Print the scripted stream events as SSE frames and exit")
def simulate(
    messages: tuple[str, ...],
    scope: str | None,
    no_topic: bool,
    delay_ms: int,
    script: bool,
):
    """Demonstrate history, optimistic sends and live replies without a server."""
    if script:
        asyncio.run(_print_script(delay_ms))
        return

    selection = resolve_scope(scope, no_topic)
    texts = list(messages) or ["Hello from the console", "Can you check my invoice?"]
    asyncio.run(_simulate(texts, selection, delay_ms))


async def _print_script(delay_ms: int):
    async for event in stream_simulator_events("demo-thread", delay_ms=delay_ms):
        click.echo(format_stream_event(event), nl=False)


async def _simulate(texts: list[str], selection: ScopeSelection, delay_ms: int):
    async with SimulatedMessagingClient.with_demo_thread(reply_delay_ms=delay_ms) as client:
        directory = ThreadDirectory(client, DEMO_AGENT)
        await directory.load()
        thread = directory.threads[0]

        controller = ConversationController(client, agent=DEMO_AGENT, on_change=MessagePrinter())
        controller.on_handover_detected = HandoverRefresher(
            directory.find_thread, on_refreshed=controller.apply_thread_update
        )

        async with controller:
            click.echo(f"== {thread.id} ({selection.label()})")
            await controller.select_thread(thread, selection)
            await controller.stream.wait_open(timeout=5)

            for text in texts:
                await controller.send_message(text)
                # echo plus scripted reply
                await asyncio.sleep(delay_ms * 3 / 1000.0)

            pending = [m for m in controller.messages if m.is_optimistic]
            logger.debug(f"{len(pending)} optimistic messages still pending")

            click.echo("== final")
            for message in reversed(controller.visible_messages):
                click.echo(format_message(message))
            click.echo(f"Simulation complete: {len(controller.visible_messages)} messages, {len(pending)} pending")


def register_command(parent_group):
    """Register simulate command with parent CLI group."""
    parent_group.add_command(simulate)
