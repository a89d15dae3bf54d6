"""Incremental facet lists (categories, brands) with per-value counts.

Each dimension keeps its own accumulated list. A scope change discards the
list and reloads from offset 0; "load more" appends the next page at the
offset equal to the number of items already loaded. Counts are computed under
the *opposite* dimension's filters plus the query text, so they answer "how
many results if I also pick this value".
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Tuple

from .config import settings
from .gateway import GatewayError, QueryGateway
from .state import FacetCount, FacetDimension, QueryFilters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FacetList:
    dimension: FacetDimension
    items: Tuple[FacetCount, ...] = ()
    total: int = 0
    scope: QueryFilters = field(default_factory=QueryFilters)
    loading: bool = False
    error: bool = False

    @property
    def has_more(self) -> bool:
        return len(self.items) < self.total

    @property
    def offset(self) -> int:
        return len(self.items)


class FacetLoader:
    """Owns the facet lists for every :class:`FacetDimension`."""

    def __init__(self, gateway: QueryGateway, page_size: int = settings.facet_page_size) -> None:
        self._gateway = gateway
        self.page_size = page_size
        self._lists: Dict[FacetDimension, FacetList] = {
            dimension: FacetList(dimension=dimension) for dimension in FacetDimension
        }
        self._issued: Dict[FacetDimension, int] = {dimension: 0 for dimension in FacetDimension}

    def get(self, dimension: FacetDimension) -> FacetList:
        return self._lists[dimension]

    @property
    def categories(self) -> FacetList:
        return self._lists[FacetDimension.CATEGORY]

    @property
    def brands(self) -> FacetList:
        return self._lists[FacetDimension.BRAND]

    async def load_facet(
        self, dimension: FacetDimension, scope: QueryFilters, offset: int, limit: int
    ) -> Tuple[List[FacetCount], int]:
        """Fetch one page of ``dimension`` values and the total number of values."""
        scope = scope.without(dimension)
        items, total = await asyncio.gather(
            self._gateway.facet_page(dimension, scope, limit, offset),
            self._gateway.facet_count(dimension, scope),
        )
        return list(items), int(total)

    async def reset_and_load(self, dimension: FacetDimension, scope: QueryFilters) -> FacetList:
        """Reload ``dimension`` from offset 0 under a new scope."""
        scope = scope.without(dimension)
        self._issued[dimension] += 1
        ticket = self._issued[dimension]
        self._lists[dimension] = replace(self._lists[dimension], scope=scope, loading=True, error=False)
        try:
            items, total = await self.load_facet(dimension, scope, 0, self.page_size)
        except GatewayError as exc:
            return self._fail(dimension, ticket, exc)
        except asyncio.CancelledError:
            self._settle(dimension, ticket)
            raise
        if ticket != self._issued[dimension]:
            logger.debug("Discarding stale %s facet reset (ticket %s < %s)", dimension.value, ticket, self._issued[dimension])
            return self._lists[dimension]
        self._lists[dimension] = FacetList(dimension=dimension, items=tuple(items), total=total, scope=scope)
        logger.debug("Loaded %s/%s %s facets", len(items), total, dimension.value)
        return self._lists[dimension]

    async def append_page(self, dimension: FacetDimension) -> FacetList:
        """Grow the displayed list of ``dimension`` by one page."""
        current = self._lists[dimension]
        if current.loading:
            logger.debug("Ignoring load-more for %s: a load is in flight", dimension.value)
            return current
        if not current.has_more:
            return current
        ticket = self._issued[dimension]
        offset = current.offset
        self._lists[dimension] = replace(current, loading=True, error=False)
        try:
            items, total = await self.load_facet(dimension, current.scope, offset, self.page_size)
        except GatewayError as exc:
            return self._fail(dimension, ticket, exc)
        except asyncio.CancelledError:
            self._settle(dimension, ticket)
            raise
        if ticket != self._issued[dimension]:
            logger.debug("Discarding %s facet page at offset %s: scope changed", dimension.value, offset)
            return self._lists[dimension]
        latest = self._lists[dimension]
        self._lists[dimension] = replace(latest, items=latest.items + tuple(items), total=total, loading=False)
        return self._lists[dimension]

    def _settle(self, dimension: FacetDimension, ticket: int) -> None:
        if ticket == self._issued[dimension]:
            self._lists[dimension] = replace(self._lists[dimension], loading=False)

    def _fail(self, dimension: FacetDimension, ticket: int, exc: Exception) -> FacetList:
        logger.warning("Failed to load %s facets: %s", dimension.value, exc)
        if ticket == self._issued[dimension]:
            self._lists[dimension] = replace(self._lists[dimension], loading=False, error=True)
        return self._lists[dimension]
