"""FastAPI application exposing product search and facet lists."""
from __future__ import annotations

import asyncio
import logging
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from .cache import get_cache
from .config import LOG_FORMAT, settings
from .es_client import build_gateway, get_client
from .facets import FacetLoader
from .gateway import GatewayError, QueryGateway
from .importer import reindex_catalog
from .indexing import ensure_index, index_is_empty
from .models import FacetItem, FacetPage, PaginationInfo, ProductPage
from .state import FacetDimension, PageResult, SearchQuery, clamp_page, pagination_window
from .url_state import from_query_string, to_query_string

LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport"):
    logging.getLogger(name).setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)
logger.info("Logging configured at %s", settings.log_level.upper())

app = FastAPI(title="Product Search Service")


def get_gateway() -> QueryGateway:
    return build_gateway()


@app.on_event("startup")
async def startup_event() -> None:
    await ensure_index(get_client())


@app.get("/health")
async def health() -> dict:
    es = get_client()
    status = await asyncio.to_thread(es.cluster.health)
    empty = await index_is_empty(es)
    return {
        "elasticsearch": status.get("status"),
        "index": settings.es_index,
        "empty": empty,
    }


def _page_response(query: SearchQuery, result: PageResult) -> ProductPage:
    return ProductPage(
        query=query.text,
        categories=list(query.categories),
        brands=list(query.brands),
        items=list(result.items),
        pagination=PaginationInfo(
            current_page=result.current_page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
            pages=pagination_window(result.current_page, result.total_pages),
        ),
        url=to_query_string(query),
    )


@app.get("/products", response_model=ProductPage)
async def products(
    request: Request,
    page_size: int = Query(settings.page_size, ge=1, le=settings.max_page_size),
    gateway: QueryGateway = Depends(get_gateway),
) -> ProductPage:
    # q/categories/brands/page are read leniently from the raw query string
    query = from_query_string(request.url.query, page_size=page_size)
    try:
        items, total = await gateway.search(query.filters, query.offset, query.page_size)
        result = PageResult(items=tuple(items), current_page=query.page, page_size=page_size, total_items=total)
        last_page = clamp_page(query.page, result.total_pages)
        if last_page != query.page:
            logger.info("Requested page %s past last page %s, clamping", query.page, last_page)
            query = SearchQuery(query.text, query.categories, query.brands, last_page, page_size)
            items, total = await gateway.search(query.filters, query.offset, query.page_size)
            result = PageResult(items=tuple(items), current_page=last_page, page_size=page_size, total_items=total)
    except GatewayError as exc:
        raise HTTPException(status_code=503, detail=f"Product store unavailable: {exc}") from exc
    return _page_response(query, result)


@app.get("/facets/{dimension}", response_model=FacetPage)
async def facets(
    dimension: FacetDimension,
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(settings.facet_page_size, ge=1, le=settings.max_page_size),
    gateway: QueryGateway = Depends(get_gateway),
) -> FacetPage:
    query = from_query_string(request.url.query)
    loader = FacetLoader(gateway, page_size=limit)
    try:
        items, total = await loader.load_facet(dimension, query.facet_scope(dimension), offset, limit)
    except GatewayError as exc:
        raise HTTPException(status_code=503, detail=f"Product store unavailable: {exc}") from exc
    facet_items: List[FacetItem] = [FacetItem(label=item.label, count=item.count) for item in items]
    return FacetPage(
        dimension=dimension.value,
        items=facet_items,
        total=total,
        offset=offset,
        has_more=offset + len(facet_items) < total,
    )


@app.post("/reindex")
async def reindex() -> dict:
    summary = await reindex_catalog(get_client())
    get_cache().clear()
    return {"fetched": summary.fetched, "valid": summary.valid, "indexed": summary.uploaded}
