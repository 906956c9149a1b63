"""
Conversation synchronization.

- ConversationController: orchestrates one thread's message list
- Reconciler / store: merging of history, stream and optimistic writes
- StreamSession: live push-stream state machine
- HandoverDetector / HandoverRefresher: handover notification and refresh
- Paginator: page-by-page loading with an in-flight guard
- ScopeSelection: topic filtering
- ThreadDirectory / TopicDirectory: thread and topic lists
- ReplyIndicator: "awaiting reply" feedback after a send
"""

from .controller import ConversationController
from .handover import HandoverDetector, HandoverRefresher
from .indicator import ReplyIndicator, ReplyPhase, is_message_recent
from .paginator import PageResult, Paginator
from .reconciler import MergeOutcome, Reconciler
from .scope import UNSET, ScopeKind, ScopeSelection, filter_messages
from .store import insert_or_replace, merge_all, sort_newest_first
from .stream import StreamSession, StreamState
from .threads import ThreadDirectory, TopicDirectory

__all__ = [
    "ConversationController",
    "HandoverDetector",
    "HandoverRefresher",
    "ReplyIndicator",
    "ReplyPhase",
    "is_message_recent",
    "PageResult",
    "Paginator",
    "MergeOutcome",
    "Reconciler",
    "UNSET",
    "ScopeKind",
    "ScopeSelection",
    "filter_messages",
    "insert_or_replace",
    "merge_all",
    "sort_newest_first",
    "StreamSession",
    "StreamState",
    "ThreadDirectory",
    "TopicDirectory",
]
