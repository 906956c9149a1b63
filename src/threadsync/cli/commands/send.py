"""
Send a message to a thread.

Usage:
    threadsync send THREAD_ID "Hello"
    threadsync send THREAD_ID "Invoice attached" --scope billing
    threadsync send THREAD_ID --data '{"orderId": 42}'
"""

import asyncio
import json
import sys

import click
import httpx
from loguru import logger

from ...models import MessageType
from ...services.conversation.threads import ThreadDirectory
from ...services.messaging.client import MessagingAPIError, MessagingClient
from ..common import agent_option, resolve_agent


@click.command(name="send")
@click.argument("thread_id")
@click.argument("text", required=False)
@agent_option
@click.option("--scope", "-s", default=None, help="Topic to send under (default: no topic)")
@click.option("--data", "data_json", default=None, help="JSON payload; sends a Data message")
def send(thread_id: str, text: str | None, agent: str | None, scope: str | None, data_json: str | None):
    """
    Send TEXT (or a --data payload) to an existing thread.

    The thread's participant and workflow are looked up from the agent's
    thread list.
    """
    agent = resolve_agent(agent)
    if text is None and data_json is None:
        raise click.UsageError("Provide TEXT or --data")

    metadata = None
    if data_json is not None:
        try:
            metadata = json.loads(data_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--data")

    try:
        sent_to = asyncio.run(_send(agent, thread_id, text, scope, metadata))
    except (MessagingAPIError, httpx.HTTPError) as e:
        logger.error(f"Failed to send message: {e}")
        sys.exit(1)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    click.echo(sent_to)


async def _send(agent: str, thread_id: str, text: str | None, scope: str | None, metadata):
    async with MessagingClient.from_settings() as client:
        thread = await ThreadDirectory(client, agent).find_thread(thread_id)
        if thread is None:
            raise ValueError(f"Thread {thread_id} not found for agent {agent}")
        if not thread.can_send:
            raise ValueError(f"Thread {thread_id} is missing participant_id or workflow_type")

        return await client.send_message(
            agent,
            thread.participant_id,
            thread.workflow_type,
            text,
            workflow_id=thread.workflow_id,
            metadata=metadata,
            scope=scope,
            thread_id=thread.id,
            message_type=MessageType.DATA if metadata is not None else MessageType.CHAT,
        )


def register_command(parent_group):
    """Register send command with parent CLI group."""
    parent_group.add_command(send)
