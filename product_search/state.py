"""Immutable search state, user intents and the reducer that applies them.

The controller never mutates a :class:`SearchQuery` in place. Every user
action is expressed as an intent message and :func:`reduce` computes the next
committed query from the current one. Derived views (:class:`PageResult`,
facet lists) are replaced wholesale whenever a fetch completes.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Sequence, Union

from .models import ProductRecord

ELLIPSIS = "..."
FULL_WINDOW_LIMIT = 7


class FacetDimension(str, Enum):
    CATEGORY = "category"
    BRAND = "brand"

    @property
    def store_field(self) -> str:
        """Name of the stored product field backing this dimension."""
        return "categories" if self is FacetDimension.CATEGORY else "brand"

    @property
    def opposite(self) -> "FacetDimension":
        return FacetDimension.BRAND if self is FacetDimension.CATEGORY else FacetDimension.CATEGORY


def normalize_labels(values: Iterable[str] | None) -> tuple[str, ...]:
    """Trim labels, drop blanks and duplicates while keeping first-seen order."""
    if not values:
        return ()
    seen: dict[str, None] = {}
    for value in values:
        label = (value or "").strip()
        if label:
            seen.setdefault(label, None)
    return tuple(seen)


@dataclass(frozen=True)
class QueryFilters:
    """Filter predicates shared by product searches and facet scopes."""

    text: str = ""
    categories: tuple[str, ...] = ()
    brands: tuple[str, ...] = ()

    def without(self, dimension: FacetDimension) -> "QueryFilters":
        """Scope for a facet request: drop the facet's own dimension."""
        if dimension is FacetDimension.CATEGORY:
            return replace(self, categories=())
        return replace(self, brands=())


@dataclass(frozen=True)
class SearchQuery:
    text: str = ""
    categories: tuple[str, ...] = ()
    brands: tuple[str, ...] = ()
    page: int = 1
    page_size: int = 50

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")
        object.__setattr__(self, "text", (self.text or "").strip())
        object.__setattr__(self, "categories", normalize_labels(self.categories))
        object.__setattr__(self, "brands", normalize_labels(self.brands))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def filters(self) -> QueryFilters:
        return QueryFilters(text=self.text, categories=self.categories, brands=self.brands)

    def facet_scope(self, dimension: FacetDimension) -> QueryFilters:
        return self.filters.without(dimension)


@dataclass(frozen=True)
class FacetCount:
    label: str
    count: int

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"facet count must be non-negative, got {self.count}")


@dataclass(frozen=True)
class PageResult:
    items: tuple[ProductRecord, ...] = ()
    current_page: int = 1
    page_size: int = 50
    total_items: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size) if self.page_size else 0


# --- intents -----------------------------------------------------------------


@dataclass(frozen=True)
class CommitText:
    text: str


@dataclass(frozen=True)
class SetFilters:
    categories: tuple[str, ...] = ()
    brands: tuple[str, ...] = ()


@dataclass(frozen=True)
class SetPage:
    page: int


@dataclass(frozen=True)
class Hydrate:
    query: SearchQuery = field(default_factory=SearchQuery)


Intent = Union[CommitText, SetFilters, SetPage, Hydrate]


def clamp_page(page: int, total_pages: int) -> int:
    """Clamp a requested page into ``[1, total_pages]`` (at least 1)."""
    return max(1, min(page, max(total_pages, 1)))


def reduce(query: SearchQuery, intent: Intent, total_pages: int = 0) -> SearchQuery:
    """Return the next committed query for ``intent``.

    Text and filter changes reset the page to 1. Page changes are clamped to
    the known page count. The returned value equals ``query`` when the intent
    changes nothing, which callers use to skip redundant requests.
    """
    if isinstance(intent, CommitText):
        text = (intent.text or "").strip()
        if text == query.text:
            return query
        return replace(query, text=text, page=1)
    if isinstance(intent, SetFilters):
        categories = normalize_labels(intent.categories)
        brands = normalize_labels(intent.brands)
        if categories == query.categories and brands == query.brands:
            return query
        return replace(query, categories=categories, brands=brands, page=1)
    if isinstance(intent, SetPage):
        page = clamp_page(intent.page, total_pages)
        if page == query.page:
            return query
        return replace(query, page=page)
    if isinstance(intent, Hydrate):
        return replace(intent.query, page_size=query.page_size)
    raise TypeError(f"Unsupported intent: {intent!r}")


def toggled(labels: Sequence[str], label: str) -> tuple[str, ...]:
    """Add ``label`` when absent, remove it when present."""
    if label in labels:
        return tuple(item for item in labels if item != label)
    return (*labels, label)


def pagination_window(current: int, total: int) -> List[Union[int, str]]:
    """Compact page list: first, last, a window around ``current`` and ellipses."""
    if total <= 0:
        return []
    if total <= FULL_WINDOW_LIMIT:
        return list(range(1, total + 1))

    current = max(1, min(current, total))
    start = max(2, current - 1)
    end = min(total - 1, current + 1)

    pages: List[Union[int, str]] = [1]
    if start > 2:
        pages.append(ELLIPSIS)
    pages.extend(range(start, end + 1))
    if end < total - 1:
        pages.append(ELLIPSIS)
    pages.append(total)
    return pages
