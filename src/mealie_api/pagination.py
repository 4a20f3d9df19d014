"""Cursor-based pagination over a paged HTTP resource.

A paged resource answers ``GET ...?page=n`` (1-based) with
``{"totalPages": k, "items": [...]}``. ``PagedFetcher`` turns that into a
lazy async sequence of items:

- pages are fetched on demand, one at a time, in order
- ``totalPages`` from the server is authoritative
- a failed page fetch raises exactly one ``FetchError`` and ends the
  stream; nothing is retried and no further page is requested
"""

from __future__ import annotations

from typing import Awaitable, Callable, Generic, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field

from shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FetchError(Exception):
    """A page could not be fetched or deserialized."""

    def __init__(self, message: str, page: Optional[int] = None) -> None:
        super().__init__(message)
        self.page = page


class Page(BaseModel, Generic[T]):
    """One page of a paginated resource."""
    model_config = ConfigDict(populate_by_name=True)

    items: list[T] = Field(default_factory=list)
    total_pages: int = Field(..., alias="totalPages")


PageFetcher = Callable[[int], Awaitable[Page[T]]]


class PageStream(Generic[T]):
    """
    Async iterator over the items of every page.

    Owns its cursor: ``1`` initially, ``n + 1`` after page ``n`` when
    ``n < total_pages``, ``None`` once exhausted or after an error.
    """

    def __init__(self, fetch_page: PageFetcher[T]) -> None:
        self._fetch_page = fetch_page
        self._cursor: Optional[int] = 1
        self._buffer: list[T] = []
        self.fetch_count = 0

    @property
    def exhausted(self) -> bool:
        return self._cursor is None and not self._buffer

    def __aiter__(self) -> "PageStream[T]":
        return self

    async def __anext__(self) -> T:
        while not self._buffer:
            if self._cursor is None:
                raise StopAsyncIteration
            await self._advance(self._cursor)
        return self._buffer.pop(0)

    async def _advance(self, page: int) -> None:
        self.fetch_count += 1
        try:
            result = await self._fetch_page(page)
        except FetchError:
            self._cursor = None
            raise
        except (httpx.HTTPError, ValueError) as e:
            self._cursor = None
            raise FetchError(f"Failed to fetch page {page}: {e}", page=page) from e

        logger.debug(
            "Page fetched",
            page=page,
            total_pages=result.total_pages,
            item_count=len(result.items)
        )
        self._buffer = list(result.items)
        self._cursor = page + 1 if page < result.total_pages else None


class PagedFetcher(Generic[T]):
    """
    Exposes a paged resource as a lazy sequence.

    Each ``stream_all()`` call starts a fresh stream with its own cursor;
    a single stream must not be consumed concurrently.
    """

    def __init__(self, fetch_page: PageFetcher[T]) -> None:
        self.fetch_page = fetch_page

    def stream_all(self) -> PageStream[T]:
        return PageStream(self.fetch_page)

    async def collect(self) -> list[T]:
        """Materialize the whole resource, raising on the first failed page."""
        return [item async for item in self.stream_all()]
