"""
Thread and topic listing commands.

Usage:
    threadsync threads --agent "Support Agent"
    threadsync threads --agent "Support Agent" --pages 3 --json
    threadsync topics THREAD_ID
    threadsync delete THREAD_ID --yes
"""

import asyncio
import json
import sys

import click
import httpx
from loguru import logger

from ...services.conversation.threads import ThreadDirectory, TopicDirectory
from ...services.messaging.client import MessagingAPIError, MessagingClient
from ..common import agent_option, format_thread, resolve_agent


def register_commands(group: click.Group):
    """Register thread commands."""
    group.add_command(threads_command)
    group.add_command(topics_command)
    group.add_command(delete_command)


@click.command(name="threads")
@agent_option
@click.option("--pages", "-p", default=1, show_default=True, help="Number of pages to load")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def threads_command(agent: str | None, pages: int, as_json: bool):
    """List conversation threads for an agent, most recent first."""
    agent = resolve_agent(agent)
    try:
        threads = asyncio.run(_list_threads(agent, pages))
    except (MessagingAPIError, httpx.HTTPError) as e:
        logger.error(f"Failed to load threads: {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([t.model_dump(mode="json", by_alias=True) for t in threads], indent=2))
        return
    if not threads:
        click.echo(f"No threads for agent {agent}")
        return
    for thread in threads:
        click.echo(format_thread(thread))


async def _list_threads(agent: str, pages: int):
    async with MessagingClient.from_settings() as client:
        directory = ThreadDirectory(client, agent)
        await directory.load()
        for _ in range(pages - 1):
            if not directory.has_more:
                break
            await directory.load_more()
        return directory.threads


@click.command(name="topics")
@click.argument("thread_id")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def topics_command(thread_id: str, as_json: bool):
    """List the topics (scopes) of a thread."""
    try:
        topics = asyncio.run(_list_topics(thread_id))
    except (MessagingAPIError, httpx.HTTPError) as e:
        logger.error(f"Failed to load topics for {thread_id}: {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([t.model_dump(mode="json", by_alias=True) for t in topics], indent=2))
        return
    for topic in topics:
        if topic.scope is None:
            name = "(no topic)"
        elif topic.scope == "":
            name = '""'
        else:
            name = topic.scope
        last = topic.last_message_at.strftime("%Y-%m-%d %H:%M") if topic.last_message_at else "-"
        click.echo(f"{name:<24} {topic.message_count:>6}  {last}")


async def _list_topics(thread_id: str):
    async with MessagingClient.from_settings() as client:
        return await TopicDirectory(client, thread_id).load()


@click.command(name="delete")
@click.argument("thread_id")
@click.confirmation_option("--yes", prompt="Delete this thread and all its messages?")
def delete_command(thread_id: str):
    """Delete a thread."""
    try:
        asyncio.run(_delete_thread(thread_id))
    except (MessagingAPIError, httpx.HTTPError) as e:
        logger.error(f"Failed to delete thread {thread_id}: {e}")
        sys.exit(1)
    click.echo(f"Deleted {thread_id}")


async def _delete_thread(thread_id: str):
    async with MessagingClient.from_settings() as client:
        await client.delete_thread(thread_id)
