"""Batch job: import Open Food Facts catalog pages into the products index."""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Iterable

from product_search.cache import get_cache
from product_search.config import LOG_FORMAT, settings
from product_search.es_client import get_client
from product_search.importer import import_catalog, reindex_catalog

logger = logging.getLogger("import_catalog")


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Import catalog pages into the products index")
    parser.add_argument("--start-page", type=int, default=settings.import_start_page)
    parser.add_argument("--end-page", type=int, default=settings.import_end_page)
    parser.add_argument("--delay", type=float, default=settings.import_delay_seconds, help="Seconds between page fetches")
    parser.add_argument("--reindex", action="store_true", help="Drop and recreate the index first")
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.getLevelName(settings.log_level.upper()), format=LOG_FORMAT, force=True)
    logger.info(
        "Starting import of pages %s..%s (%s products per page)",
        args.start_page,
        args.end_page,
        settings.import_page_size,
    )
    job = reindex_catalog if args.reindex else import_catalog
    try:
        summary = asyncio.run(
            job(get_client(), start_page=args.start_page, end_page=args.end_page, delay=args.delay)
        )
    except Exception:
        logger.exception("Fatal error during import")
        return 1
    if summary.uploaded:
        get_cache().clear()
    logger.info(
        "Fetched %s, valid %s, skipped %s, uploaded %s",
        summary.fetched,
        summary.valid,
        summary.skipped,
        summary.uploaded,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
