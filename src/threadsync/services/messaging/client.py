"""
Messaging API client.

Thin async wrapper over the messaging server's REST endpoints and the
per-thread push stream, built on httpx.AsyncClient.

Endpoints:
    GET    /api/client/messaging/threads                        - Threads for an agent
    GET    /api/client/messaging/threads/{id}/messages          - Message history page
    GET    /api/client/messaging/threads/{id}/topics            - Topic summaries
    GET    /api/client/messaging/threads/{id}/stream            - Push stream
    POST   /api/client/messaging/inbound/chat                   - Send chat message
    POST   /api/client/messaging/inbound/data                   - Send data message
    DELETE /api/client/messaging/threads/{id}                   - Delete thread

Error Handling:
- Non-2xx responses raise MessagingAPIError with the server's message.
  The server reports errors as {"error": "message"}; plain-text bodies are
  used as-is.
- Transport failures surface as httpx.HTTPError subclasses.

Example:
    ```python
    async with MessagingClient.from_settings() as client:
        threads = await client.get_threads("Support Agent", page=0, page_size=50)
        async for event in client.stream_thread_events(threads[0].id):
            print(event.event)
    ```
"""

from collections.abc import AsyncIterator, Mapping
from typing import Any, TYPE_CHECKING

import httpx
from loguru import logger

from ...models import Message, MessageType, Thread, TopicSummary
from ...settings import settings
from .events import StreamEvent, StreamParser

if TYPE_CHECKING:
    from ..conversation.scope import ScopeSelection

MESSAGING_PREFIX = "/api/client/messaging"


class MessagingAPIError(Exception):
    """Non-success response from the messaging API."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Messaging API error {status_code}: {message}")


def _error_message(response: httpx.Response) -> str:
    """Extract the server's error message ({"error": ...}, else body text)."""
    try:
        payload = response.json()
        if isinstance(payload, dict) and payload.get("error"):
            return str(payload["error"])
    except ValueError:
        pass
    return response.text.strip() or "An error occurred"


def _as_list(payload: Any) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "items", "value"):
            if isinstance(payload.get(key), list):
                return payload[key]
    raise MessagingAPIError(200, f"Expected a list response, got {type(payload).__name__}")


class MessagingClient:
    """Async client for the messaging API.

    Attributes:
        base_url: Messaging server base URL
        heartbeat_seconds: Default heartbeat interval requested for streams
    """

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        tenant_id: str | None = None,
        timeout_seconds: float = 30.0,
        heartbeat_seconds: int = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Messaging server base URL
            api_token: Bearer token (omitted from requests when None)
            tenant_id: Tenant id sent as X-Tenant-Id when set
            timeout_seconds: REST timeout; streams only use it for connect
            heartbeat_seconds: Default heartbeat interval for streams
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.heartbeat_seconds = heartbeat_seconds
        self._timeout_seconds = timeout_seconds

        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        if tenant_id:
            headers["X-Tenant-Id"] = tenant_id

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )
        logger.debug(
            f"Messaging client initialized (base_url={self.base_url}, "
            f"token={'***' if api_token else 'None'}, tenant={tenant_id})"
        )

    @classmethod
    def from_settings(cls, **overrides: Any) -> "MessagingClient":
        """Build a client from the global settings (keyword overrides win)."""
        config: dict[str, Any] = {
            "base_url": settings.messaging.base_url,
            "api_token": settings.messaging.api_token,
            "tenant_id": settings.messaging.tenant_id,
            "timeout_seconds": settings.messaging.timeout_seconds,
            "heartbeat_seconds": settings.messaging.heartbeat_seconds,
        }
        config.update(overrides)
        return cls(**config)

    async def __aenter__(self) -> "MessagingClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # REQUEST HELPERS
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        logger.debug(f"{method} {path} params={dict(params or {})}")
        response = await self._client.request(method, path, params=params, json=json)
        if response.is_error:
            message = _error_message(response)
            if response.status_code == 401:
                logger.error("Authentication error (401). Token may be invalid or expired.")
            logger.error(f"API error {response.status_code} for {method} {path}: {message}")
            raise MessagingAPIError(response.status_code, message)

        if not response.content:
            return None
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    # =========================================================================
    # THREADS
    # =========================================================================

    async def get_threads(
        self,
        agent: str,
        page: int | None = None,
        page_size: int | None = None,
    ) -> list[Thread]:
        """List threads for an agent, newest activity first.

        Args:
            agent: Agent name
            page: Page number (server convention, 0-based for threads)
            page_size: Threads per page

        Returns:
            Threads on the requested page
        """
        params: dict[str, Any] = {"agent": agent}
        if page is not None:
            params["page"] = page
        if page_size is not None:
            params["pageSize"] = page_size

        payload = await self._request("GET", f"{MESSAGING_PREFIX}/threads", params=params)
        return [Thread.model_validate(item) for item in _as_list(payload or [])]

    async def delete_thread(self, thread_id: str) -> None:
        await self._request("DELETE", f"{MESSAGING_PREFIX}/threads/{thread_id}")
        logger.info(f"Deleted thread {thread_id}")

    async def get_topics(
        self,
        thread_id: str,
        page: int | None = None,
        page_size: int | None = None,
    ) -> list[TopicSummary]:
        """List topic (scope) summaries for a thread."""
        params: dict[str, Any] = {}
        if page is not None:
            params["page"] = page
        if page_size is not None:
            params["pageSize"] = page_size

        payload = await self._request(
            "GET", f"{MESSAGING_PREFIX}/threads/{thread_id}/topics", params=params
        )
        return [TopicSummary.model_validate(item) for item in _as_list(payload or [])]

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def get_messages(
        self,
        thread_id: str,
        page: int,
        page_size: int,
        scope: "ScopeSelection | None" = None,
    ) -> list[Message]:
        """Fetch one page of thread history (1-based pages, newest first).

        Args:
            thread_id: Thread identifier
            page: 1-based page number
            page_size: Messages per page
            scope: Topic selection; None or unfiltered fetches every topic

        Returns:
            Messages on the page
        """
        params: dict[str, Any] = {"page": page, "pageSize": page_size}
        if scope is not None:
            params.update(scope.query_params())

        payload = await self._request(
            "GET", f"{MESSAGING_PREFIX}/threads/{thread_id}/messages", params=params
        )
        return [Message.model_validate(item) for item in _as_list(payload or [])]

    async def send_message(
        self,
        agent: str | None,
        participant_id: str,
        workflow_type: str,
        content: str | None,
        workflow_id: str | None = None,
        metadata: Any = None,
        scope: str | None = None,
        thread_id: str | None = None,
        message_type: MessageType = MessageType.CHAT,
    ) -> str:
        """Send a message to an agent workflow.

        The server answers with the thread id only, never the created message.

        Args:
            agent: Agent name
            participant_id: Sender id
            workflow_type: Workflow type
            content: Message text
            workflow_id: Workflow instance id (None for singleton workflows)
            metadata: Optional data payload
            scope: Topic; None for the default topic
            thread_id: Existing thread (None starts a new thread)
            message_type: CHAT or DATA (selects the inbound endpoint)

        Returns:
            Thread id the message was delivered to
        """
        payload: dict[str, Any] = {
            "agent": agent,
            "workflowType": workflow_type,
            "workflowId": workflow_id,
            "participantId": participant_id,
            "text": content,
            "data": metadata,
            "scope": scope,
        }
        if thread_id:
            payload["threadId"] = thread_id

        endpoint = "data" if message_type == MessageType.DATA else "chat"
        response = await self._request(
            "POST", f"{MESSAGING_PREFIX}/inbound/{endpoint}", json=payload
        )

        if isinstance(response, dict):
            response = response.get("value") or response.get("threadId")
        if not response:
            raise MessagingAPIError(200, "Send response did not include a thread id")
        return str(response)

    # =========================================================================
    # PUSH STREAM
    # =========================================================================

    async def stream_thread_events(
        self,
        thread_id: str,
        heartbeat_seconds: int | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Subscribe to a thread's push stream.

        Yields events until the server closes the response. Cancelling the
        consuming task closes the connection.

        Raises:
            MessagingAPIError: If the subscription request is rejected
            httpx.HTTPError: On transport failures
        """
        params = {"heartbeatSeconds": heartbeat_seconds or self.heartbeat_seconds}
        path = f"{MESSAGING_PREFIX}/threads/{thread_id}/stream"
        timeout = httpx.Timeout(self._timeout_seconds, read=None)

        async with self._client.stream(
            "GET",
            path,
            params=params,
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            if response.is_error:
                await response.aread()
                message = _error_message(response)
                logger.error(f"Stream API error {response.status_code} for thread {thread_id}: {message}")
                raise MessagingAPIError(response.status_code, message)

            parser = StreamParser()
            async for line in response.aiter_lines():
                event = parser.feed(line)
                if event is not None:
                    yield event

            event = parser.flush()
            if event is not None:
                yield event
