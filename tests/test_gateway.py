"""Elasticsearch gateway: request bodies and response parsing."""

import pytest

from product_search.cache import InMemoryCache
from product_search.gateway import (
    ElasticsearchGateway,
    GatewayError,
    build_facet_count_body,
    build_facet_page_body,
    build_search_body,
    escape_wildcard,
)
from product_search.state import FacetCount, FacetDimension, QueryFilters


class StubElasticsearch:
    def __init__(self, response=None, error=None):
        self.response = response or {}
        self.error = error
        self.requests = []

    def search(self, index, body):
        self.requests.append((index, body))
        if self.error is not None:
            raise self.error
        return self.response


def test_milk_search_body_is_substring_match_only():
    body = build_search_body(QueryFilters(text="milk"), 0, 50)

    assert body["from"] == 0
    assert body["size"] == 50
    assert body["track_total_hits"] is True
    assert body["query"] == {
        "bool": {"filter": [{"wildcard": {"name": {"value": "*milk*", "case_insensitive": True}}}]}
    }


def test_unfiltered_search_matches_all():
    assert build_search_body(QueryFilters(), 100, 50)["query"] == {"match_all": {}}


def test_categories_require_all_and_brands_any():
    body = build_search_body(QueryFilters(categories=("cheeses", "milks"), brands=("Nestle", "Danone")), 0, 10)

    assert body["query"]["bool"]["filter"] == [
        {"term": {"categories": "cheeses"}},
        {"term": {"categories": "milks"}},
        {"terms": {"brand": ["Nestle", "Danone"]}},
    ]


def test_wildcard_characters_in_text_are_escaped():
    assert escape_wildcard("50% *off?") == "50% \\*off\\?"
    assert escape_wildcard("a\\b") == "a\\\\b"


def test_category_facet_bodies_are_scoped_by_brand_and_text_only():
    scope = QueryFilters(text="milk", categories=("cheeses",), brands=("Nestle",))

    page_body = build_facet_page_body(FacetDimension.CATEGORY, scope, limit=50, offset=100)
    count_body = build_facet_count_body(FacetDimension.CATEGORY, scope)

    filters = page_body["query"]["bool"]["filter"]
    assert {"terms": {"brand": ["Nestle"]}} in filters
    assert not any("term" in clause and "categories" in clause["term"] for clause in filters)
    assert page_body["aggs"]["facet"]["terms"]["field"] == "categories"
    assert page_body["aggs"]["facet"]["terms"]["size"] == 150
    assert page_body["aggs"]["facet"]["aggs"]["window"] == {"bucket_sort": {"from": 100, "size": 50}}
    assert count_body["query"] == page_body["query"]
    assert count_body["aggs"]["distinct"]["cardinality"]["field"] == "categories"


def test_brand_facet_body_uses_brand_field():
    body = build_facet_page_body(FacetDimension.BRAND, QueryFilters(brands=("Nestle",)), limit=10, offset=0)

    assert body["query"] == {"match_all": {}}
    assert body["aggs"]["facet"]["terms"]["field"] == "brand"


@pytest.mark.asyncio
async def test_search_parses_hits_and_total():
    es = StubElasticsearch(
        {
            "took": 3,
            "hits": {
                "total": {"value": 120, "relation": "eq"},
                "hits": [
                    {
                        "_id": "3017620422003",
                        "_source": {
                            "id": "3017620422003",
                            "name": "Milk chocolate",
                            "brand": "Nestle",
                            "categories": ["dairy products"],
                            "countries": ["france"],
                            "image_url": None,
                        },
                    }
                ],
            },
        }
    )
    gateway = ElasticsearchGateway(es, index="products")

    items, total = await gateway.search(QueryFilters(text="milk"), 0, 50)

    assert total == 120
    assert items[0].id == "3017620422003"
    assert items[0].categories == ["dairy products"]
    assert es.requests[0][0] == "products"


@pytest.mark.asyncio
async def test_facet_page_is_cached():
    es = StubElasticsearch(
        {"aggregations": {"facet": {"buckets": [{"key": "cheeses", "doc_count": 12}, {"key": "milks", "doc_count": 4}]}}}
    )
    gateway = ElasticsearchGateway(es, index="products", cache=InMemoryCache(), cache_ttl=60)

    first = await gateway.facet_page(FacetDimension.CATEGORY, QueryFilters(), limit=50, offset=0)
    second = await gateway.facet_page(FacetDimension.CATEGORY, QueryFilters(), limit=50, offset=0)

    assert first == second == [FacetCount("cheeses", 12), FacetCount("milks", 4)]
    assert len(es.requests) == 1


@pytest.mark.asyncio
async def test_facet_count_reads_cardinality():
    es = StubElasticsearch({"aggregations": {"distinct": {"value": 42}}})
    gateway = ElasticsearchGateway(es, index="products")

    assert await gateway.facet_count(FacetDimension.BRAND, QueryFilters(text="tea")) == 42


@pytest.mark.asyncio
async def test_transport_errors_become_gateway_errors():
    from elastic_transport import ConnectionError as TransportConnectionError

    es = StubElasticsearch(error=TransportConnectionError("connection refused"))
    gateway = ElasticsearchGateway(es, index="products")

    with pytest.raises(GatewayError):
        await gateway.search(QueryFilters(), 0, 50)
