"""Shared CLI options and output helpers."""

import click

from ..models import Message, Thread
from ..services.conversation.scope import UNSET, ScopeSelection
from ..settings import settings


def agent_option(func):
    return click.option(
        "--agent",
        "-a",
        default=None,
        help="Agent name (defaults to MESSAGING__AGENT)",
    )(func)


def scope_options(func):
    """``--scope NAME`` / ``--no-topic`` pair."""
    func = click.option(
        "--no-topic",
        is_flag=True,
        help="Only messages without a topic",
    )(func)
    return click.option(
        "--scope",
        "-s",
        default=None,
        help='Topic name ("" selects the empty topic)',
    )(func)


def resolve_agent(agent: str | None) -> str:
    resolved = agent or settings.messaging.agent
    if not resolved:
        raise click.UsageError("No agent given: pass --agent or set MESSAGING__AGENT")
    return resolved


def resolve_scope(scope: str | None, no_topic: bool) -> ScopeSelection:
    if no_topic and scope is not None:
        raise click.UsageError("--scope and --no-topic are mutually exclusive")
    if no_topic:
        return ScopeSelection.no_topic()
    return ScopeSelection.from_value(UNSET if scope is None else scope)


def format_message(message: Message) -> str:
    stamp = message.created_at.strftime("%Y-%m-%d %H:%M:%S")
    topic = f" [{message.scope}]" if message.scope is not None else ""
    pending = " (pending)" if message.is_optimistic else ""
    text = message.text if message.text else f"<{message.message_type.value}>"
    return f"{stamp} {message.direction.value:<8}{topic} {text}{pending}"


def format_thread(thread: Thread) -> str:
    updated = thread.updated_at.strftime("%Y-%m-%d %H:%M") if thread.updated_at else "-"
    return (
        f"{thread.id}  participant={thread.participant_id or '-'}  "
        f"workflow={thread.workflow_type or '-'}/{thread.workflow_id or '-'}  updated={updated}"
    )
