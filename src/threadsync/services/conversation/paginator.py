"""
Page-by-page loading.

Used for message history (15 per page, 1-based, newest first) and for the
thread and topic lists (50 per page).

``has_more`` is ``len(page) == page_size``. When the total is an exact
multiple of the page size this reports one page too many; the extra fetch
returns an empty page and flips has_more off.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class PageResult(Generic[T]):
    """One fetched page."""

    records: list[T] = field(default_factory=list)
    has_more: bool = False
    page: int = 1


class Paginator(Generic[T]):
    """
    Drives sequential page loads with an in-flight guard.

    Attributes:
        page_size: Records per page
        first_page: Number of the first page (1 for messages)
        page: Last successfully loaded page, None before the first load
        has_more: Whether another page is believed to exist
        is_loading: A fetch is in flight
    """

    def __init__(
        self,
        fetch_page: Callable[[int, int], Awaitable[list[T]]],
        page_size: int,
        first_page: int = 1,
        name: str = "records",
    ):
        """
        Args:
            fetch_page: ``async (page, page_size) -> records``
            page_size: Records per page
            first_page: Number of the first page
            name: Label used in log messages
        """
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.fetch_page = fetch_page
        self.page_size = page_size
        self.first_page = first_page
        self.name = name
        self.page: int | None = None
        self.has_more = True
        self.is_loading = False

    def reset(self) -> None:
        self.page = None
        self.has_more = True
        self.is_loading = False

    async def _fetch(self, page: int) -> PageResult[T]:
        self.is_loading = True
        try:
            records = await self.fetch_page(page, self.page_size)
        finally:
            self.is_loading = False
        logger.debug(f"Loaded {len(records)} {self.name} (page {page})")
        return PageResult(records=list(records), has_more=len(records) == self.page_size, page=page)

    async def load_first_page(self) -> PageResult[T]:
        """
        Load the first page, resetting position.

        Raises:
            Exception: Whatever the fetch raised (has_more is cleared first)
        """
        self.page = None
        try:
            result = await self._fetch(self.first_page)
        except Exception:
            self.has_more = False
            raise
        self.page = result.page
        self.has_more = result.has_more
        return result

    async def load_next_page(self) -> PageResult[T] | None:
        """
        Load the page after the last loaded one.

        No-op (returns None, no fetch) while a load is in flight, before the
        first page, or when has_more is False. A failed fetch leaves the
        position unchanged and re-raises.
        """
        if self.is_loading or not self.has_more or self.page is None:
            logger.debug(
                f"Cannot load more {self.name}: loading={self.is_loading}, "
                f"has_more={self.has_more}, page={self.page}"
            )
            return None

        result = await self._fetch(self.page + 1)
        if result.records:
            self.page = result.page
        self.has_more = result.has_more
        return result
