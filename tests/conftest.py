"""Shared fixtures: an in-process gateway double that records every call."""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from product_search.gateway import GatewayError
from product_search.models import ProductRecord
from product_search.state import FacetCount, FacetDimension, QueryFilters


def make_product(idx: int, **overrides) -> ProductRecord:
    data = {
        "id": f"{idx:013d}",
        "name": f"Product {idx}",
        "brand": "Nestle",
        "categories": ["dairy products"],
        "countries": ["france"],
        "image_url": None,
    }
    data.update(overrides)
    return ProductRecord(**data)


class FakeGateway:
    """Records requests; responses can be held back to force an arrival order."""

    def __init__(self, total: int = 0, facets: Optional[Dict[FacetDimension, List[FacetCount]]] = None) -> None:
        self.total = total
        self.facets = facets or {dimension: [] for dimension in FacetDimension}
        self.search_calls: List[Tuple[QueryFilters, int, int]] = []
        self.facet_page_calls: List[Tuple[FacetDimension, QueryFilters, int, int]] = []
        self.facet_count_calls: List[Tuple[FacetDimension, QueryFilters]] = []
        self.fail_search = False
        self.fail_facets = False
        self.gates: Dict[str, asyncio.Event] = {}

    def hold(self, text: str) -> asyncio.Event:
        """Block searches for ``text`` until the returned event is set."""
        self.gates[text] = asyncio.Event()
        return self.gates[text]

    async def search(self, filters: QueryFilters, offset: int, limit: int):
        self.search_calls.append((filters, offset, limit))
        gate = self.gates.get(filters.text)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_search:
            raise GatewayError("search unavailable")
        count = max(0, min(limit, self.total - offset))
        items = [make_product(offset + i, name=f"{filters.text or 'item'} {offset + i}") for i in range(count)]
        return items, self.total

    async def facet_page(self, dimension: FacetDimension, scope: QueryFilters, limit: int, offset: int):
        self.facet_page_calls.append((dimension, scope, limit, offset))
        await asyncio.sleep(0)
        if self.fail_facets:
            raise GatewayError("facets unavailable")
        return self.facets[dimension][offset:offset + limit]

    async def facet_count(self, dimension: FacetDimension, scope: QueryFilters) -> int:
        self.facet_count_calls.append((dimension, scope))
        await asyncio.sleep(0)
        if self.fail_facets:
            raise GatewayError("facets unavailable")
        return len(self.facets[dimension])


@pytest.fixture
def gateway() -> FakeGateway:
    categories = [FacetCount(f"category {i}", 100 - i) for i in range(7)]
    brands = [FacetCount(f"brand {i}", 50 - i) for i in range(3)]
    return FakeGateway(
        total=120,
        facets={FacetDimension.CATEGORY: categories, FacetDimension.BRAND: brands},
    )
