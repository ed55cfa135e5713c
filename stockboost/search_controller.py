"""Debounced, superseding search over the product index.

The controller owns one :class:`SearchQueryState`. Keystrokes go through
:meth:`DebouncedSearchController.set_query`; only the value still current
after the quiet interval becomes ``debounced_input`` and triggers a request.
Every request remembers the ``(debounced_input, page)`` pair it was issued
for and its result is dropped on arrival unless that pair is still current,
so responses are applied in input order rather than completion order.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Set

from .config import settings
from .description_cache import DescriptionCache
from .errors import SearchError
from .models import SearchDocument, SkuDetail
from .text_index import WILDCARD, TextIndex

logger = logging.getLogger(__name__)


@dataclass
class SearchQueryState:
    raw_input: str = ""
    debounced_input: str = ""
    page: int = 1
    per_page: int = 10
    documents: List[SearchDocument] = field(default_factory=list)
    total_found: int = 0
    loading: bool = False
    error: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.page * self.per_page < self.total_found


class DebouncedSearchController:
    def __init__(
        self,
        index: TextIndex,
        *,
        fields: Sequence[str] | str | None = None,
        filter_by: str | None = None,
        sort_by: str | None = None,
        per_page: int | None = None,
        debounce_ms: int | None = None,
        min_query_length: int | None = None,
        description_cache: DescriptionCache | None = None,
        on_change: Callable[[SearchQueryState], None] | None = None,
    ) -> None:
        self.index = index
        self.fields = fields
        self.filter_by = filter_by
        self.sort_by = sort_by
        self.debounce_seconds = (settings.search_debounce_ms if debounce_ms is None else debounce_ms) / 1000
        self.min_query_length = settings.search_min_query_length if min_query_length is None else min_query_length
        self.description_cache = description_cache
        self.on_change = on_change
        self.state = SearchQueryState(per_page=per_page or settings.search_per_page)
        self._timer: asyncio.Task | None = None
        self._requests: Set[asyncio.Task] = set()

    @property
    def documents(self) -> List[SearchDocument]:
        return self.state.documents

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    @property
    def has_more(self) -> bool:
        return self.state.has_more

    @property
    def total_found(self) -> int:
        return self.state.total_found

    def set_query(self, text: str) -> None:
        """Record raw input and restart the quiet-interval timer."""
        self.state.raw_input = text
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._settle(text))

    async def load_more(self) -> None:
        if self.state.loading or not self.state.has_more:
            return
        self.state.page += 1
        await self._run(self.state.debounced_input, self.state.page, append=True)

    async def refetch(self) -> None:
        """Re-run the current query from the first page (retry after an error)."""
        self.state.page = 1
        await self._run(self.state.debounced_input, 1, append=False)

    async def wait_idle(self) -> None:
        """Wait until no timer or request is outstanding."""
        while True:
            pending = [task for task in (self._timer, *self._requests) if task is not None and not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Abandon the pending timer and every in-flight request."""
        if self._timer is not None:
            self._timer.cancel()
        for task in list(self._requests):
            task.cancel()

    async def _settle(self, text: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._apply_input(text)

    def _apply_input(self, text: str) -> None:
        if text == self.state.debounced_input:
            return
        self.state.debounced_input = text
        self.state.page = 1
        task = asyncio.get_running_loop().create_task(self._run(text, 1, append=False))
        self._requests.add(task)
        task.add_done_callback(self._requests.discard)

    def _searchable(self, query: str) -> bool:
        return query == WILDCARD or len(query.strip()) >= self.min_query_length

    def _is_current(self, query: str, page: int) -> bool:
        return self.state.debounced_input == query and self.state.page == page

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)

    async def _run(self, query: str, page: int, *, append: bool) -> None:
        state = self.state
        if not self._searchable(query):
            state.documents = []
            state.total_found = 0
            state.loading = False
            state.error = None
            self._notify()
            return

        state.loading = True
        state.error = None
        self._notify()
        try:
            result = await self.index.search(
                query,
                self.fields,
                filter_by=self.filter_by,
                sort_by=self.sort_by,
                page=page,
                per_page=state.per_page,
            )
        except SearchError as exc:
            if not self._is_current(query, page):
                logger.debug("ignoring failure of superseded query q=%r page=%s", query, page)
                return
            state.error = exc.message or "Search failed"
            state.documents = []
            state.total_found = 0
            state.loading = False
            self._notify()
            return

        if not self._is_current(query, page):
            logger.debug("discarding superseded results q=%r page=%s", query, page)
            return

        documents = result.documents
        state.documents = state.documents + documents if append else documents
        state.total_found = result.found
        state.loading = False
        self._notify()

        if self.description_cache is not None:
            self.description_cache.add_descriptions(SkuDetail.from_document(doc) for doc in documents)
