"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides."""

    es_host: str = _get_env("ES_HOST", "http://localhost:9200")
    es_index: str = _get_env("ES_INDEX", "products")
    mapping_path: str = _get_env("MAPPING_PATH", "product-mapping.json")
    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    cache_ttl_seconds: int = int(_get_env("CACHE_TTL_SECONDS", "300"))
    page_size: int = int(_get_env("PAGE_SIZE", "50"))
    max_page_size: int = int(_get_env("MAX_PAGE_SIZE", "200"))
    facet_page_size: int = int(_get_env("FACET_PAGE_SIZE", "50"))
    debounce_ms: int = int(_get_env("DEBOUNCE_MS", "300"))
    catalog_url: str = _get_env("CATALOG_URL", "https://world.openfoodfacts.org/cgi/search.pl")
    import_page_size: int = int(_get_env("IMPORT_PAGE_SIZE", "100"))
    import_start_page: int = int(_get_env("IMPORT_START_PAGE", "1"))
    import_end_page: int = int(_get_env("IMPORT_END_PAGE", "100"))
    import_delay_seconds: float = float(_get_env("IMPORT_DELAY_SECONDS", "0.5"))
    upsert_batch_size: int = int(_get_env("UPSERT_BATCH_SIZE", "50"))
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
