"""
Search engine: one contract over the indexed and streaming backends
"""

import logging
from typing import Optional

from core.config import settings
from core.exceptions import StoreUnavailableError
from schemas.search import SearchFilter, SearchResult
from search.indexed import IndexedSearchBackend
from search.streaming import StreamingSearchBackend

logger = logging.getLogger(__name__)

SEARCH_MODES = ("auto", "indexed", "streaming")


class SearchEngine:
    """
    Route searches to a backend.

    Modes:
        auto       indexed, falling back to streaming when the store is unavailable
        indexed    store only
        streaming  remote sources only
    """

    def __init__(
        self,
        indexed: Optional[IndexedSearchBackend] = None,
        streaming: Optional[StreamingSearchBackend] = None,
        mode: Optional[str] = None,
    ):
        mode = mode or settings.SEARCH_BACKEND
        if mode not in SEARCH_MODES:
            raise ValueError(f"Unknown search mode {mode!r}, expected one of {SEARCH_MODES}")
        if mode != "streaming" and indexed is None:
            raise ValueError(f"Search mode {mode!r} needs an indexed backend")
        if mode == "streaming" and streaming is None:
            raise ValueError("Search mode 'streaming' needs a streaming backend")

        self.indexed = indexed
        self.streaming = streaming
        self.mode = mode

    async def search(
        self,
        filters: SearchFilter,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> SearchResult:
        """
        Return one page of matches and the total behind it.

        ``page``/``page_size`` override the values carried by ``filters``.

        Raises:
            SearchError: the page could not be produced
            StoreUnavailableError: indexed mode and the store is unavailable
            ValidationError: an override is out of range
        """
        if page is not None or page_size is not None:
            overrides = {
                "page": page if page is not None else filters.page,
                "page_size": page_size if page_size is not None else filters.page_size,
            }
            filters = SearchFilter.model_validate({**filters.model_dump(), **overrides})

        return await self._route(filters, filters)

    async def full_text_search(
        self,
        term: str,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> SearchResult:
        """
        Case-insensitive substring search over city, state, material,
        district, street and notes; best scores first, then newest.

        The streaming backend (directly or as fallback) keeps source order.
        """
        filters = SearchFilter(
            text=term,
            sort_by="inspection_score",
            sort_order="desc",
            page=page,
            page_size=page_size if page_size is not None else settings.SEARCH_DEFAULT_PAGE_SIZE,
        )
        if filters.text is None:
            raise ValueError("Full-text search needs a non-blank term")
        return await self._route(filters, filters.model_copy(update={"sort_by": None}))

    async def _route(self, filters: SearchFilter, streaming_filters: SearchFilter) -> SearchResult:
        if self.mode == "streaming":
            return await self.streaming.search(streaming_filters)

        try:
            return await self.indexed.search(filters)
        except StoreUnavailableError as e:
            if self.mode == "indexed" or self.streaming is None:
                raise
            logger.warning(f"Store unavailable, falling back to streaming search: {e.message}")
            return await self.streaming.search(streaming_filters)
