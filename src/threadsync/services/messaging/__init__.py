"""
Messaging transport.

- MessagingClient: REST + push-stream client for the messaging API (httpx)
- StreamEvent / StreamParser: push-stream event model and SSE frame parser
- SimulatedMessagingClient: in-memory backend with the same interface
"""

from .client import MessagingAPIError, MessagingClient
from .events import (
    CONNECTED_EVENT,
    HEARTBEAT_EVENT,
    LIVENESS_EVENTS,
    MESSAGE_EVENTS,
    StreamEvent,
    StreamParser,
    format_stream_event,
    parse_stream_line,
)
from .simulator import SimulatedMessagingClient, stream_simulator_events

__all__ = [
    "MessagingClient",
    "MessagingAPIError",
    "StreamEvent",
    "StreamParser",
    "parse_stream_line",
    "format_stream_event",
    "CONNECTED_EVENT",
    "HEARTBEAT_EVENT",
    "LIVENESS_EVENTS",
    "MESSAGE_EVENTS",
    "SimulatedMessagingClient",
    "stream_simulator_events",
]
