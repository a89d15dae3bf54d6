"""Elasticsearch client and gateway factories.

The rest of the code works against the official synchronous client. Blocking
calls are wrapped via ``asyncio.to_thread`` by the caller where necessary.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from elasticsearch import Elasticsearch

from .cache import CacheBackend, get_cache
from .config import settings
from .gateway import ElasticsearchGateway

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10


@lru_cache(maxsize=1)
def get_client() -> Elasticsearch:
    logger.info("Connecting to Elasticsearch at %s (index %s)", settings.es_host, settings.es_index)
    return Elasticsearch(settings.es_host, request_timeout=REQUEST_TIMEOUT_SECONDS)


def build_gateway(cache: Optional[CacheBackend] = None) -> ElasticsearchGateway:
    """Gateway over the configured index; facet results go to the shared cache unless ``cache`` is given."""
    return ElasticsearchGateway(
        get_client(),
        index=settings.es_index,
        cache=cache if cache is not None else get_cache(),
        cache_ttl=settings.cache_ttl_seconds,
    )
