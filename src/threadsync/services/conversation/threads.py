"""
Thread and topic lists.

ThreadDirectory pages through an agent's threads (50 per page, 0-based as
the server numbers them) and can look a single thread up again, which is how
thread metadata is refreshed after a handover.

TopicDirectory pages through the topic summaries of one thread (50 per page,
1-based).
"""

from typing import TYPE_CHECKING

from loguru import logger

from ...models import Thread, TopicSummary
from ...settings import settings
from .paginator import Paginator

if TYPE_CHECKING:
    from ..messaging.client import MessagingClient


class ThreadDirectory:
    """
    Paginated thread list for one agent.

    Attributes:
        agent: Agent whose threads are listed
        threads: Threads loaded so far, in server order
    """

    def __init__(
        self,
        client: "MessagingClient",
        agent: str,
        page_size: int | None = None,
    ):
        self.client = client
        self.agent = agent
        self.threads: list[Thread] = []
        self.paginator: Paginator[Thread] = Paginator(
            self._fetch,
            page_size or settings.conversation.thread_page_size,
            first_page=0,
            name="threads",
        )

    async def _fetch(self, page: int, page_size: int) -> list[Thread]:
        return await self.client.get_threads(self.agent, page=page, page_size=page_size)

    @property
    def has_more(self) -> bool:
        return self.paginator.has_more

    async def load(self) -> list[Thread]:
        """Reload from the first page."""
        result = await self.paginator.load_first_page()
        self.threads = result.records
        logger.info(f"Loaded {len(self.threads)} threads for agent {self.agent}")
        return self.threads

    async def load_more(self) -> list[Thread]:
        """Append the next page. Returns the newly added threads."""
        result = await self.paginator.load_next_page()
        if result is None:
            return []
        known = {thread.id for thread in self.threads}
        added = [thread for thread in result.records if thread.id not in known]
        self.threads.extend(added)
        return added

    def get(self, thread_id: str) -> Thread | None:
        return next((thread for thread in self.threads if thread.id == thread_id), None)

    async def find_thread(self, thread_id: str, max_pages: int = 5) -> Thread | None:
        """
        Fetch fresh metadata for ``thread_id``.

        Scans pages from the start (recently active threads come first) and
        replaces the cached copy when found.
        """
        page_size = self.paginator.page_size
        for page in range(self.paginator.first_page, self.paginator.first_page + max_pages):
            threads = await self.client.get_threads(self.agent, page=page, page_size=page_size)
            for thread in threads:
                if thread.id == thread_id:
                    self._replace(thread)
                    return thread
            if len(threads) < page_size:
                break
        return None

    def _replace(self, thread: Thread) -> None:
        for index, existing in enumerate(self.threads):
            if existing.id == thread.id:
                self.threads[index] = thread
                return


class TopicDirectory:
    """Paginated topic summaries for one thread."""

    def __init__(
        self,
        client: "MessagingClient",
        thread_id: str,
        page_size: int | None = None,
    ):
        self.client = client
        self.thread_id = thread_id
        self.topics: list[TopicSummary] = []
        self.paginator: Paginator[TopicSummary] = Paginator(
            self._fetch,
            page_size or settings.conversation.topic_page_size,
            first_page=1,
            name="topics",
        )

    async def _fetch(self, page: int, page_size: int) -> list[TopicSummary]:
        return await self.client.get_topics(self.thread_id, page=page, page_size=page_size)

    @property
    def has_more(self) -> bool:
        return self.paginator.has_more

    async def load(self) -> list[TopicSummary]:
        result = await self.paginator.load_first_page()
        self.topics = result.records
        return self.topics

    async def load_more(self) -> list[TopicSummary]:
        result = await self.paginator.load_next_page()
        if result is None:
            return []
        self.topics.extend(result.records)
        return result.records
