"""
Message store operations.

A thread's messages are kept as a plain list that is always sorted by
created_at, newest first. Every operation here is a pure function that
returns a new list; the controller swaps its list in one assignment, so no
reader ever observes a half-applied merge.

Dedup key is the message id. A message whose id is already present is
ignored, even if the incoming copy carries different fields.
"""

from collections.abc import Iterable

from ...models import Message


def sort_newest_first(messages: Iterable[Message]) -> list[Message]:
    """Sort by created_at descending. Equal timestamps keep their input order."""
    return sorted(messages, key=lambda message: message.created_at, reverse=True)


def contains_id(messages: Iterable[Message], message_id: str) -> bool:
    return any(message.id == message_id for message in messages)


def insert_or_replace(messages: list[Message], incoming: Message) -> list[Message]:
    """
    Insert ``incoming`` unless its id is already present.

    Returns:
        New list sorted newest first (the input list is not modified)
    """
    if contains_id(messages, incoming.id):
        return sort_newest_first(messages)
    return sort_newest_first([*messages, incoming])


def merge_all(messages: list[Message], incoming: Iterable[Message]) -> list[Message]:
    """Insert every message of ``incoming`` (duplicates by id are dropped)."""
    seen = {message.id for message in messages}
    merged = list(messages)
    for message in incoming:
        if message.id in seen:
            continue
        seen.add(message.id)
        merged.append(message)
    return sort_newest_first(merged)
