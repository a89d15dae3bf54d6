"""Catalog importer: Open Food Facts pages -> products index.

Pages are fetched one after another with a fixed delay between requests. Raw
entries are reshaped into :class:`ProductRecord` values and upserted by id in
fixed-size batches, so re-running an import is idempotent. Failures on a
single page or batch are logged and skipped.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from elasticsearch import ApiError, Elasticsearch, TransportError, helpers

from .config import settings
from .models import ProductRecord

logger = logging.getLogger(__name__)

MAX_CATEGORIES = 5
MAX_COUNTRIES = 3
ENGLISH_PREFIX = "en:"
USER_AGENT = "product-search-importer/0.1"
FETCH_TIMEOUT_SECONDS = 30


@dataclass
class ImportSummary:
    fetched: int = 0
    valid: int = 0
    uploaded: int = 0

    @property
    def skipped(self) -> int:
        return self.fetched - self.valid


def _tag_label(tag: str) -> str:
    """``"en:dairy-products"`` -> ``"dairy products"``."""
    if tag.startswith(ENGLISH_PREFIX):
        tag = tag[len(ENGLISH_PREFIX):]
    return tag.replace("-", " ").strip()


def transform_product(raw: dict) -> Optional[ProductRecord]:
    """Reshape a raw catalog entry, or return ``None`` when it must be dropped."""
    code = str(raw.get("code") or "").strip()
    name = (raw.get("product_name") or "").strip()
    if not code or not name:
        return None

    tags = raw.get("categories_tags") or []
    categories = [_tag_label(tag) for tag in tags if isinstance(tag, str) and tag.startswith(ENGLISH_PREFIX)]
    categories = [label for label in categories if label][:MAX_CATEGORIES]
    if not categories:
        return None

    countries = [_tag_label(tag) for tag in raw.get("countries_tags") or [] if isinstance(tag, str)]
    return ProductRecord(
        id=code,
        name=name,
        brand=(raw.get("brands") or "").strip() or "Unknown",
        categories=categories,
        countries=[label for label in countries if label][:MAX_COUNTRIES],
        image_url=raw.get("image_url") or raw.get("image_front_url") or None,
    )


def transform_products(raw_products: Iterable[dict]) -> List[ProductRecord]:
    products = []
    for raw in raw_products:
        product = transform_product(raw)
        if product is not None:
            products.append(product)
    return products


def page_url(page: int, page_size: int = settings.import_page_size) -> str:
    query = urlencode({"action": "process", "json": "true", "page_size": page_size, "page": page})
    return f"{settings.catalog_url}?{query}"


def fetch_page(page: int) -> List[dict]:
    """Download one catalog page; network and parse errors yield an empty page."""
    url = page_url(page)
    logger.info("Fetching page %s", page)
    request = Request(url, headers={"User-Agent": USER_AGENT, "Accept": "application/json"})
    try:
        with urlopen(request, timeout=FETCH_TIMEOUT_SECONDS) as response:
            payload = json.load(response)
    except (OSError, URLError) as exc:
        logger.error("Error fetching page %s: %s", page, exc)
        return []
    except json.JSONDecodeError as exc:
        logger.error("Error parsing page %s: %s", page, exc)
        return []
    products = payload.get("products") if isinstance(payload, dict) else None
    return products or []


def _iter_actions(index: str, products: Sequence[ProductRecord]) -> Iterable[dict]:
    for product in products:
        yield {
            "_op_type": "index",
            "_index": index,
            "_id": product.id,
            "_source": product.model_dump(),
        }


def upsert_products(
    es: Elasticsearch,
    products: Sequence[ProductRecord],
    batch_size: int = settings.upsert_batch_size,
    index: str = settings.es_index,
) -> int:
    """Upsert ``products`` by id in batches; returns the number uploaded."""
    uploaded = 0
    batches = (len(products) + batch_size - 1) // batch_size
    for number, start in enumerate(range(0, len(products), batch_size), start=1):
        batch = products[start:start + batch_size]
        try:
            helpers.bulk(es, _iter_actions(index, batch))
        except helpers.BulkIndexError as exc:
            logger.error("Error uploading batch %s/%s: %s documents failed", number, batches, len(exc.errors))
            continue
        except (ApiError, TransportError) as exc:
            logger.error("Error uploading batch %s/%s: %s", number, batches, exc)
            continue
        uploaded += len(batch)
        logger.info("Uploaded batch %s/%s (%s/%s)", number, batches, uploaded, len(products))
    return uploaded


async def fetch_catalog(start_page: int, end_page: int, delay: float) -> List[dict]:
    """Fetch pages ``start_page..end_page`` in order, stopping at the first empty one."""
    raw_products: List[dict] = []
    for page in range(start_page, end_page + 1):
        products = await asyncio.to_thread(fetch_page, page)
        if not products:
            logger.info("Page %s returned no products, stopping", page)
            break
        raw_products.extend(products)
        logger.info("Page %s/%s - got %s products (total: %s)", page, end_page, len(products), len(raw_products))
        if page < end_page:
            await asyncio.sleep(delay)
    return raw_products


async def import_catalog(
    es: Elasticsearch,
    start_page: int = settings.import_start_page,
    end_page: int = settings.import_end_page,
    delay: float = settings.import_delay_seconds,
) -> ImportSummary:
    from .indexing import ensure_index

    summary = ImportSummary()
    raw_products = await fetch_catalog(start_page, end_page, delay)
    summary.fetched = len(raw_products)
    products = transform_products(raw_products)
    summary.valid = len(products)
    logger.info("Valid products after filtering: %s (skipped %s)", summary.valid, summary.skipped)
    if not products:
        return summary

    await ensure_index(es)
    summary.uploaded = await asyncio.to_thread(upsert_products, es, products)
    logger.info("Import complete: %s products uploaded", summary.uploaded)
    return summary


async def reindex_catalog(es: Elasticsearch, **kwargs) -> ImportSummary:
    from .indexing import drop_index, ensure_index

    await drop_index(es)
    await ensure_index(es)
    return await import_catalog(es, **kwargs)
