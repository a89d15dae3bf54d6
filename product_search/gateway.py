"""Remote query gateway over the products index.

The controller and the HTTP API only talk to the :class:`QueryGateway`
protocol: filtered, paginated row retrieval with a total count, plus grouped
facet counts scoped by the caller's filters. :class:`ElasticsearchGateway`
implements it on top of the synchronous official client.

Filter semantics:

* ``text``: case-insensitive substring match on ``name`` (``ILIKE '%text%'``)
* ``categories``: the product must carry *all* selected categories
* ``brands``: the product brand must be *one of* the selected brands

Empty values mean "unfiltered".
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

from elasticsearch import ApiError, Elasticsearch, TransportError

from .cache import CacheBackend, cache_key
from .config import settings
from .models import ProductRecord
from .state import FacetCount, FacetDimension, QueryFilters

logger = logging.getLogger(__name__)

# Distinct values below this threshold are counted exactly by ES.
CARDINALITY_PRECISION = 40000
_WILDCARD_SPECIAL = ("\\", "*", "?")


class GatewayError(RuntimeError):
    """The product store could not answer a query."""


class QueryGateway(Protocol):
    async def search(self, filters: QueryFilters, offset: int, limit: int) -> Tuple[List[ProductRecord], int]: ...

    async def facet_count(self, dimension: FacetDimension, scope: QueryFilters) -> int: ...

    async def facet_page(
        self, dimension: FacetDimension, scope: QueryFilters, limit: int, offset: int
    ) -> List[FacetCount]: ...


def escape_wildcard(text: str) -> str:
    for ch in _WILDCARD_SPECIAL:
        text = text.replace(ch, "\\" + ch)
    return text


def build_filter_clauses(filters: QueryFilters) -> List[dict]:
    clauses: List[dict] = []
    if filters.text:
        clauses.append(
            {
                "wildcard": {
                    "name": {
                        "value": f"*{escape_wildcard(filters.text)}*",
                        "case_insensitive": True,
                    }
                }
            }
        )
    for category in filters.categories:
        clauses.append({"term": {"categories": category}})
    if filters.brands:
        clauses.append({"terms": {"brand": list(filters.brands)}})
    return clauses


def _filtered_query(filters: QueryFilters) -> dict:
    clauses = build_filter_clauses(filters)
    if not clauses:
        return {"match_all": {}}
    return {"bool": {"filter": clauses}}


def build_search_body(filters: QueryFilters, offset: int, limit: int) -> Dict[str, Any]:
    body = {
        "from": offset,
        "size": limit,
        "track_total_hits": True,
        "query": _filtered_query(filters),
        "sort": [{"name.sort": "asc"}, {"id": "asc"}],
    }
    logger.debug("ES search payload=%s", body)
    return body


def build_facet_count_body(dimension: FacetDimension, scope: QueryFilters) -> Dict[str, Any]:
    return {
        "size": 0,
        "query": _filtered_query(scope.without(dimension)),
        "aggs": {
            "distinct": {
                "cardinality": {
                    "field": dimension.store_field,
                    "precision_threshold": CARDINALITY_PRECISION,
                }
            }
        },
    }


def build_facet_page_body(dimension: FacetDimension, scope: QueryFilters, limit: int, offset: int) -> Dict[str, Any]:
    body = {
        "size": 0,
        "query": _filtered_query(scope.without(dimension)),
        "aggs": {
            "facet": {
                "terms": {
                    "field": dimension.store_field,
                    "size": offset + limit,
                    "order": [{"_count": "desc"}, {"_key": "asc"}],
                },
                "aggs": {
                    "window": {"bucket_sort": {"from": offset, "size": limit}},
                },
            }
        },
    }
    logger.debug("ES facet payload=%s", body)
    return body


def _to_record(hit: dict) -> ProductRecord:
    source = hit.get("_source", {})
    return ProductRecord(
        id=str(source.get("id") or hit.get("_id")),
        name=source.get("name", ""),
        brand=source.get("brand", ""),
        categories=source.get("categories") or [],
        countries=source.get("countries") or [],
        image_url=source.get("image_url"),
    )


class ElasticsearchGateway:
    """:class:`QueryGateway` backed by an Elasticsearch index."""

    def __init__(
        self,
        es: Elasticsearch,
        index: str = settings.es_index,
        cache: Optional[CacheBackend] = None,
        cache_ttl: int = settings.cache_ttl_seconds,
    ) -> None:
        self._es = es
        self._index = index
        self._cache = cache
        self._cache_ttl = cache_ttl

    async def _search(self, body: Dict[str, Any]) -> dict:
        try:
            return await asyncio.to_thread(self._es.search, index=self._index, body=body)
        except (ApiError, TransportError) as exc:
            logger.warning("Elasticsearch query on %s failed: %s", self._index, exc)
            raise GatewayError(str(exc)) from exc

    async def search(self, filters: QueryFilters, offset: int, limit: int) -> Tuple[List[ProductRecord], int]:
        response = await self._search(build_search_body(filters, offset, limit))
        hits = response.get("hits", {})
        records = [_to_record(hit) for hit in hits.get("hits", [])]
        total = hits.get("total", {}).get("value", 0)
        logger.info(
            "search text=%r categories=%s brands=%s offset=%s limit=%s hits=%s total=%s took=%sms",
            filters.text,
            list(filters.categories),
            list(filters.brands),
            offset,
            limit,
            len(records),
            total,
            response.get("took", 0),
        )
        return records, total

    async def facet_count(self, dimension: FacetDimension, scope: QueryFilters) -> int:
        key = cache_key(self._index, "count", dimension.value, scope.without(dimension))
        cached = self._cache.get(key) if self._cache is not None else None
        if cached is not None:
            return int(cached)
        response = await self._search(build_facet_count_body(dimension, scope))
        count = int(response.get("aggregations", {}).get("distinct", {}).get("value", 0))
        if self._cache is not None:
            self._cache.set(key, count, self._cache_ttl)
        return count

    async def facet_page(
        self, dimension: FacetDimension, scope: QueryFilters, limit: int, offset: int
    ) -> List[FacetCount]:
        key = cache_key(self._index, "page", dimension.value, scope.without(dimension), limit, offset)
        cached = self._cache.get(key) if self._cache is not None else None
        if cached is None:
            response = await self._search(build_facet_page_body(dimension, scope, limit, offset))
            buckets = response.get("aggregations", {}).get("facet", {}).get("buckets", [])
            cached = [[bucket["key"], bucket["doc_count"]] for bucket in buckets]
            if self._cache is not None:
                self._cache.set(key, cached, self._cache_ttl)
        return [FacetCount(label=label, count=count) for label, count in cached]
