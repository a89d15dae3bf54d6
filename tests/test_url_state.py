"""URL query-string round trip and tolerant parsing."""

import pytest

from product_search.state import SearchQuery
from product_search.url_state import (
    from_query_string,
    hydrate_from_url,
    parse_list,
    serialize_to_url,
    to_query_string,
)


@pytest.mark.parametrize(
    "query",
    [
        SearchQuery(),
        SearchQuery(text="milk"),
        SearchQuery(text="dark chocolate", categories=("dairy products", "cheeses"), page=4),
        SearchQuery(brands=("Nestlé, Nesquik", 'Ben "&" Jerry\'s', "back\\slash"), page=2),
        SearchQuery(categories=("{braced}", "plain"), brands=("Danone",)),
    ],
)
def test_round_trip_reproduces_query(query):
    """hydrate(serialize(q)) reproduces text, filters and page."""

    assert hydrate_from_url(serialize_to_url(query)) == query
    assert from_query_string(to_query_string(query)) == query


def test_default_values_are_omitted():
    """Empty text, empty filters and page 1 leave no trace in the URL."""

    assert serialize_to_url(SearchQuery()) == {}
    assert serialize_to_url(SearchQuery(text="milk")) == {"q": "milk"}
    assert serialize_to_url(SearchQuery(page=3)) == {"page": "3"}


def test_canonical_write_form_is_plain_comma_joined():
    query = SearchQuery(categories=("dairy products", "cheeses"), brands=("Nestle", "Danone"))

    assert serialize_to_url(query) == {"categories": "dairy products,cheeses", "brands": "Nestle,Danone"}


def test_legacy_brace_wrapped_lists_are_accepted():
    assert parse_list("{dairy products,cheeses}") == ["dairy products", "cheeses"]
    assert parse_list('{"cheeses, soft",milk}') == ["cheeses, soft", "milk"]
    assert parse_list("{}") == []


def test_list_parsing_trims_and_dedupes():
    assert parse_list(" a , ,b,a ") == ["a", "b"]
    assert parse_list("") == []
    assert parse_list(None) == []


@pytest.mark.parametrize("raw", ["{a,b", "a,b}", '"unterminated', 'a"b', '"a"b'])
def test_malformed_lists_become_empty(raw):
    """Undecodable segments fall back to an empty list instead of failing."""

    assert parse_list(raw) == []


def test_malformed_fields_fall_back_independently():
    query = hydrate_from_url({"q": "  milk ", "categories": "{broken", "brands": "Nestle", "page": "abc"})

    assert query == SearchQuery(text="milk", brands=("Nestle",))


@pytest.mark.parametrize("raw_page", ["0", "-3", "", "2.5", "many"])
def test_invalid_page_defaults_to_one(raw_page):
    assert hydrate_from_url({"page": raw_page}).page == 1


def test_undecodable_percent_encoding_is_treated_as_empty():
    query = from_query_string("?q=milk&categories=%FF%FE&brands=Nestle&page=2")

    assert query.categories == ()
    assert query.brands == ("Nestle",)
    assert query.page == 2


def test_page_size_is_not_part_of_the_url():
    query = from_query_string("q=tea", page_size=20)

    assert query.page_size == 20
    assert "page_size" not in serialize_to_url(query)
