"""Search state controller.

Owns the committed :class:`SearchQuery`, turns user intents into new queries
through :func:`state.reduce`, and issues the product search and facet reloads
each change requires. Runs on a single asyncio event loop.

Ordering: every product search takes a number from a monotonically increasing
counter and its response is applied only while that number is still the
highest issued. Slow early responses therefore never overwrite fresher ones.
Facet lists follow the same rule inside :class:`FacetLoader`.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Mapping, Optional, Set

from .config import settings
from .facets import FacetList, FacetLoader
from .gateway import GatewayError, QueryGateway
from .state import (
    CommitText,
    FacetDimension,
    Hydrate,
    Intent,
    PageResult,
    SearchQuery,
    SetFilters,
    SetPage,
    clamp_page,
    pagination_window,
    reduce,
    toggled,
)
from .url_state import UrlState, hydrate_from_url, serialize_to_url

logger = logging.getLogger(__name__)


class SearchController:
    def __init__(
        self,
        gateway: QueryGateway,
        facets: Optional[FacetLoader] = None,
        page_size: int = settings.page_size,
        debounce_seconds: float = settings.debounce_ms / 1000,
    ) -> None:
        self._gateway = gateway
        self.facets = facets if facets is not None else FacetLoader(gateway)
        self.debounce_seconds = debounce_seconds
        self._query = SearchQuery(page_size=page_size)
        self._result = PageResult(page_size=page_size)
        self._issued = 0
        self._raw_text = ""
        self._debounce_task: Optional[asyncio.Task] = None
        self._quiet = False
        self._tasks: Set[asyncio.Task] = set()
        self.loading = False
        self.error = False

    # --- read side -----------------------------------------------------------

    @property
    def query(self) -> SearchQuery:
        return self._query

    @property
    def result(self) -> PageResult:
        return self._result

    @property
    def raw_text(self) -> str:
        return self._raw_text

    @property
    def categories(self) -> FacetList:
        return self.facets.categories

    @property
    def brands(self) -> FacetList:
        return self.facets.brands

    def pages(self) -> list:
        return pagination_window(self._result.current_page, self._result.total_pages)

    def serialize_to_url(self) -> UrlState:
        return serialize_to_url(self._query)

    # --- intents -------------------------------------------------------------

    def set_query_text(self, text: str) -> None:
        """Record raw input; commit it once the input has been quiet long enough."""
        self._raw_text = text
        self._cancel_pending_commit()
        self._quiet = True
        self._debounce_task = asyncio.get_running_loop().create_task(self._commit_after_quiet(text))

    async def _commit_after_quiet(self, text: str) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
        except asyncio.CancelledError:
            return
        self._quiet = False
        await self.dispatch(CommitText(text))

    def _cancel_pending_commit(self) -> None:
        # only a commit still in its quiet period may be dropped
        if self._quiet and self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._quiet = False

    async def flush(self) -> None:
        """Wait for a pending debounced commit and every in-flight request."""
        if self._debounce_task is not None:
            await asyncio.gather(self._debounce_task, return_exceptions=True)
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def set_filters(self, categories: Iterable[str] = (), brands: Iterable[str] = ()) -> None:
        await self.dispatch(SetFilters(tuple(categories), tuple(brands)))

    async def toggle_category(self, label: str) -> None:
        await self.set_filters(toggled(self._query.categories, label), self._query.brands)

    async def toggle_brand(self, label: str) -> None:
        await self.set_filters(self._query.categories, toggled(self._query.brands, label))

    async def set_page(self, page: int) -> None:
        await self.dispatch(SetPage(page))

    async def clear_query(self) -> None:
        self._cancel_pending_commit()
        self._raw_text = ""
        await self.dispatch(CommitText(""))

    async def clear_filters(self) -> None:
        await self.set_filters((), ())

    async def hydrate_from_url(self, url_state: Mapping[str, str]) -> None:
        query = hydrate_from_url(url_state, page_size=self._query.page_size)
        self._raw_text = query.text
        await self.dispatch(Hydrate(query), force=True)

    async def refresh(self) -> None:
        await self._run(self._issue_search(), *self._facet_reloads(set(FacetDimension)))

    async def load_more(self, dimension: FacetDimension) -> FacetList:
        return await self.facets.append_page(dimension)

    # --- reducer plumbing ----------------------------------------------------

    async def dispatch(self, intent: Intent, force: bool = False) -> None:
        """Apply ``intent`` and issue the requests the resulting change needs."""
        previous = self._query
        current = reduce(previous, intent, total_pages=self._result.total_pages)
        if current == previous and not force:
            logger.debug("Intent %r left the query unchanged", intent)
            return
        self._query = current
        logger.debug("Committed query %r", current)

        stale: Set[FacetDimension] = set()
        if current.text != previous.text or force:
            stale.update(FacetDimension)
        if current.categories != previous.categories:
            stale.add(FacetDimension.BRAND)
        if current.brands != previous.brands:
            stale.add(FacetDimension.CATEGORY)
        await self._run(self._issue_search(), *self._facet_reloads(stale))

    def _facet_reloads(self, dimensions: Set[FacetDimension]) -> list:
        return [
            self.facets.reset_and_load(dimension, self._query.facet_scope(dimension))
            for dimension in FacetDimension
            if dimension in dimensions
        ]

    async def _run(self, *coros) -> None:
        tasks = [asyncio.ensure_future(coro) for coro in coros]
        self._tasks.update(tasks)
        try:
            await asyncio.gather(*tasks)
        finally:
            self._tasks.difference_update(tasks)

    def _issue_search(self):
        """Number a search for the current query; the returned coroutine fetches it."""
        self._issued += 1
        self.loading = True
        return self._fetch(self._issued, self._query)

    async def _fetch(self, ticket: int, snapshot: SearchQuery) -> None:
        try:
            items, total = await self._gateway.search(snapshot.filters, snapshot.offset, snapshot.page_size)
        except GatewayError as exc:
            if ticket == self._issued:
                logger.warning("Search failed for %r: %s", snapshot, exc)
                self.loading = False
                self.error = True
            return
        except asyncio.CancelledError:
            if ticket == self._issued:
                self.loading = False
            raise
        if ticket != self._issued:
            logger.debug("Discarding stale search result (ticket %s < %s)", ticket, self._issued)
            return
        self._result = PageResult(
            items=tuple(items),
            current_page=snapshot.page,
            page_size=snapshot.page_size,
            total_items=total,
        )
        self.loading = False
        self.error = False
        last_page = clamp_page(snapshot.page, self._result.total_pages)
        if last_page != snapshot.page:
            logger.info("Page %s is past the last page %s, clamping", snapshot.page, last_page)
            await self.dispatch(SetPage(last_page))
