"""
Message - the atomic unit of a conversation thread.

Messages arrive from three places:
- Historical pages fetched from the messaging API
- Live push events on the thread stream
- Optimistic local writes synthesized before a send completes

Optimistic messages carry a ``temp-`` id that the server never sees. They are
replaced by the real message when its streamed echo is reconciled.

A payload without ``createdAt`` still validates (created_at falls back to
now) but reports ``has_timestamp == False``, so time-window checks can tell a
real timestamp from the default.
"""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, Field, PrivateAttr, model_validator

from ..core import CoreModel

OPTIMISTIC_ID_PREFIX = "temp-"


class _CaseInsensitiveEnum(str, Enum):
    """Accepts any casing of the member value ("chat", "CHAT", "Chat")."""

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


class MessageDirection(_CaseInsensitiveEnum):
    """Who a message is from, seen from the thread."""

    INCOMING = "Incoming"
    OUTGOING = "Outgoing"
    HANDOVER = "Handover"  # control signal, not content


class MessageType(_CaseInsensitiveEnum):
    """Message kind. Doubles as the push-stream event name."""

    CHAT = "Chat"
    DATA = "Data"  # metadata only, nothing to render
    HANDOFF = "Handoff"


class Message(CoreModel):
    """
    Single message in a thread.

    ``scope`` is the topic the message belongs to. ``None`` is the default
    (no topic) and is distinct from ``""``, which is a valid topic name.
    """

    thread_id: str | None = Field(default=None, description="Owning thread")
    direction: MessageDirection = Field(
        default=MessageDirection.INCOMING, description="Incoming, Outgoing or Handover"
    )
    message_type: MessageType = Field(
        default=MessageType.CHAT, description="Chat, Data or Handoff"
    )
    scope: str | None = Field(default=None, description="Topic name, None for no topic")
    text: str | None = Field(
        default=None,
        validation_alias=AliasChoices("text", "content"),
        description="Message text; empty text renders as a system message",
    )
    metadata: object | None = Field(
        default=None,
        validation_alias=AliasChoices("metadata", "data"),
        description="Opaque payload (the only content of Data messages)",
    )
    status: str | None = Field(default=None, description="Delivery/processing status")
    participant_id: str | None = None
    workflow_id: str | None = None
    workflow_type: str | None = None
    hint: str | None = None

    _timestamp_missing: bool = PrivateAttr(default=False)

    @model_validator(mode="wrap")
    @classmethod
    def _track_missing_timestamp(cls, data: Any, handler):
        message = handler(data)
        if isinstance(data, dict) and not {"createdAt", "created_at"} & data.keys():
            message._timestamp_missing = True
        return message

    @property
    def has_timestamp(self) -> bool:
        """False when the payload carried no createdAt and created_at is a local default."""
        return not self._timestamp_missing

    @property
    def is_optimistic(self) -> bool:
        """True for locally synthesized messages awaiting their server echo."""
        return self.id.startswith(OPTIMISTIC_ID_PREFIX)

    @property
    def is_handover(self) -> bool:
        return self.direction == MessageDirection.HANDOVER
