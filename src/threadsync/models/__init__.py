from .entities import (
    OPTIMISTIC_ID_PREFIX,
    Message,
    MessageDirection,
    MessageType,
    Thread,
    TopicSummary,
)

__all__ = [
    "Message",
    "MessageDirection",
    "MessageType",
    "OPTIMISTIC_ID_PREFIX",
    "Thread",
    "TopicSummary",
]
