"""Pydantic models for stored products and request/response payloads."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ProductRecord(BaseModel):
    """A catalog product as stored in the index."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    brand: str
    categories: list[str] = Field(default_factory=list, max_length=5)
    countries: list[str] = Field(default_factory=list, max_length=3)
    image_url: str | None = None


class PaginationInfo(BaseModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    pages: list[int | str] = Field(default_factory=list, description="Compact page list for display")


class ProductPage(BaseModel):
    query: str
    categories: list[str]
    brands: list[str]
    items: list[ProductRecord]
    pagination: PaginationInfo
    url: str = Field(..., description="Canonical query string for this search")


class FacetItem(BaseModel):
    label: str
    count: int = Field(..., ge=0)


class FacetPage(BaseModel):
    dimension: str
    items: list[FacetItem]
    total: int
    offset: int
    has_more: bool
