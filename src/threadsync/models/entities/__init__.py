"""
threadsync entity models

- Message: chat, data and handover messages (plus optimistic local writes)
- Thread: conversation metadata owned by the controller for a selection
- TopicSummary: per-topic counts reported by the server
"""

from .message import OPTIMISTIC_ID_PREFIX, Message, MessageDirection, MessageType
from .thread import Thread, TopicSummary

__all__ = [
    "Message",
    "MessageDirection",
    "MessageType",
    "OPTIMISTIC_ID_PREFIX",
    "Thread",
    "TopicSummary",
]
