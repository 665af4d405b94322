"""
Re-index the configured site from the command line.

Reads the same ``ONESEARCH_*`` settings as the service. On the governing
site ``--network`` also triggers a re-index on every registered brand site.

    python scripts/index_site.py
    python scripts/index_site.py --types post page
    python scripts/index_site.py --network
    python scripts/index_site.py --drop-index
"""

import argparse
import asyncio
import sys

from dotenv import load_dotenv

load_dotenv()

from onesearch.api.dependencies import (  # noqa: E402
    get_backend_opener,
    get_config_store,
    get_encryptor,
    get_governing_settings,
    get_record_builder,
    governing_scope,
    sql_resources,
)
from onesearch.config import get_settings  # noqa: E402
from onesearch.content.wordpress import WordPressContentSource  # noqa: E402
from onesearch.core.errors import OneSearchError  # noqa: E402
from onesearch.db import init_schema  # noqa: E402
from onesearch.index.writer import IndexWriter  # noqa: E402
from onesearch.main import configure_logging  # noqa: E402
from onesearch.sync.cache import BrandConfigCache  # noqa: E402
from onesearch.sync.client import GoverningLink, SyncClient  # noqa: E402
from onesearch.sync.fanout import BrandFanOut, reindex_network  # noqa: E402


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--types", nargs="+", help="Content types to index (default: the configured entity map)")
    parser.add_argument("--network", action="store_true", help="Governing site only: re-index every brand site too")
    parser.add_argument("--drop-index", action="store_true", help="Governing site only: delete the shared index (before switching to the brand role)")
    return parser.parse_args(argv)


async def main(args) -> int:
    settings = get_settings()
    configure_logging(settings.log_level)

    if not settings.content_api_url:
        print("ONESEARCH_CONTENT_API_URL is not configured.")
        return 2

    if settings.database_url:
        await init_schema(sql_resources(settings.database_url)[0])

    store = get_config_store(settings)
    governing_settings = get_governing_settings(settings, store, get_encryptor(settings))
    client = SyncClient(timeout=settings.http_timeout, origin=settings.site_url)
    source = WordPressContentSource(
        settings.content_api_url,
        username=settings.content_api_user,
        password=settings.content_api_password.get_secret_value() or None,
        timeout=settings.http_timeout,
    )

    brand_cache = None
    if not settings.is_governing:
        link = GoverningLink(client, settings.governing_url or "", settings.api_key.get_secret_value())
        brand_cache = BrandConfigCache(store, link, ttl=settings.brand_config_ttl)

    print(f"Index: {governing_scope(settings).url} ({settings.index_prefix})")
    open_backend = get_backend_opener(settings, governing_settings, brand_cache)

    try:
        async with open_backend() as backend:
            writer = IndexWriter(backend, get_record_builder(settings), source, batch_size=settings.index_batch_size)

            if args.drop_index:
                if not settings.is_governing:
                    print("Only the governing site owns the shared index.")
                    return 2
                await writer.drop_index()
                print(f"Dropped index {backend.index_name}")
                return 0

            if settings.is_governing and args.network:
                result = await reindex_network(
                    writer,
                    governing_settings,
                    BrandFanOut(governing_settings, client, timeout=settings.fanout_timeout),
                )
                print(result.message)
                result.raise_for_failures()
                return 0

            if args.types:
                types = args.types
            elif settings.is_governing:
                types = await governing_settings.get_entities(governing_settings.own_scope)
            else:
                types = (await brand_cache.get_config()).indexable_types

            print(f"Indexing {settings.site_url}: {', '.join(types) or '(no types)'}")
            report = await writer.index_all(types)
            print(report.message)
            report.raise_for_failures()
            return 0
    except OneSearchError as exc:
        print(f"Error [{exc.code}]: {exc.message}")
        return 1
    finally:
        await source.aclose()
        await client.aclose()
        if settings.database_url:
            await sql_resources(settings.database_url)[0].dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
