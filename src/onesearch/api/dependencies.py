"""
FastAPI Dependencies

Builds the service objects each request works with. Clients that hold
network connections (search backend, content source, sync client) are
created per request and closed when the request ends; tests replace any of
them through ``app.dependency_overrides``.

Process-wide state is limited to the config store (database engine or
in-memory store), the encryptor, and the in-memory search backend used
for local development.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

from fastapi import Depends

from ..config import Settings, get_settings
from ..content.source import ContentSource, InMemoryContentSource
from ..content.wordpress import WordPressContentSource
from ..core.crypto import Encryptor
from ..core.errors import CredentialsMissing, ScopeNotConfigured
from ..db import SqlConfigStore, create_engine_and_sessionmaker
from ..index.algolia import AlgoliaBackend
from ..index.backend import WRITE_ACL, SearchBackend, index_name_for
from ..index.memory import MemoryBackend
from ..index.records import RecordBuilder
from ..index.watcher import ChangeWatcher
from ..index.writer import IndexWriter
from ..scope import ScopeKey
from ..search.planner import QueryPlanner
from ..search.service import BackendOpener, FederatedSearch
from ..sync.cache import BrandConfigCache
from ..sync.client import GoverningLink, SyncClient
from ..sync.fanout import BrandFanOut
from ..sync.governing import GoverningSettings
from ..sync.models import IndexCredentials
from ..sync.store import ConfigStore, MemoryConfigStore


# ---------------------------------------------------------------------
# Process-wide resources
# ---------------------------------------------------------------------

def get_app_settings() -> Settings:
    return get_settings()


@lru_cache
def _memory_store() -> MemoryConfigStore:
    return MemoryConfigStore()


@lru_cache
def sql_resources(database_url: str):
    """Engine and store for a database URL (one pool per process)."""
    engine, factory = create_engine_and_sessionmaker(database_url)
    return engine, SqlConfigStore(factory)


@lru_cache
def _encryptor(passphrase: str) -> Encryptor:
    return Encryptor(passphrase)


@lru_cache
def _memory_backend(index_name: str) -> MemoryBackend:
    return MemoryBackend(index_name)


@lru_cache
def _memory_source() -> InMemoryContentSource:
    return InMemoryContentSource()


def get_config_store(settings: Settings = Depends(get_app_settings)) -> ConfigStore:
    if settings.database_url:
        return sql_resources(settings.database_url)[1]
    return _memory_store()


def get_encryptor(settings: Settings = Depends(get_app_settings)) -> Encryptor:
    return _encryptor(settings.encryption_key.get_secret_value())


def get_own_scope(settings: Settings = Depends(get_app_settings)) -> ScopeKey:
    return ScopeKey.of(settings.site_url)


def governing_scope(settings: Settings) -> ScopeKey:
    """The site whose index every site writes to."""
    if settings.is_governing:
        return ScopeKey.of(settings.site_url)
    if not settings.governing_url:
        raise ScopeNotConfigured("ONESEARCH_GOVERNING_URL is not configured")
    return ScopeKey.of(settings.governing_url)


# ---------------------------------------------------------------------
# Configuration sources
# ---------------------------------------------------------------------

def get_governing_settings(
    settings: Settings = Depends(get_app_settings),
    store: ConfigStore = Depends(get_config_store),
    encryptor: Encryptor = Depends(get_encryptor),
) -> GoverningSettings:
    return GoverningSettings(
        store,
        encryptor,
        ScopeKey.of(settings.site_url),
        fallback_credentials=IndexCredentials(
            app_id=settings.algolia_app_id,
            write_key=settings.algolia_write_key.get_secret_value(),
        ),
    )


async def get_sync_client(settings: Settings = Depends(get_app_settings)) -> AsyncIterator[SyncClient]:
    client = SyncClient(timeout=settings.http_timeout, origin=settings.site_url)
    try:
        yield client
    finally:
        await client.aclose()


def get_governing_link(
    settings: Settings = Depends(get_app_settings),
    client: SyncClient = Depends(get_sync_client),
) -> Optional[GoverningLink]:
    if settings.is_governing or not settings.governing_url:
        return None
    return GoverningLink(client, settings.governing_url, settings.api_key.get_secret_value())


def get_brand_cache(
    settings: Settings = Depends(get_app_settings),
    store: ConfigStore = Depends(get_config_store),
    link: Optional[GoverningLink] = Depends(get_governing_link),
) -> Optional[BrandConfigCache]:
    if link is None:
        return None
    return BrandConfigCache(store, link, ttl=settings.brand_config_ttl)


def require_brand_cache(cache: Optional[BrandConfigCache] = Depends(get_brand_cache)) -> BrandConfigCache:
    if cache is None:
        raise ScopeNotConfigured("This site is not connected to a governing site")
    return cache


# ---------------------------------------------------------------------
# Index access
# ---------------------------------------------------------------------

async def get_index_credentials(
    settings: Settings = Depends(get_app_settings),
    governing_settings: GoverningSettings = Depends(get_governing_settings),
    brand_cache: Optional[BrandConfigCache] = Depends(get_brand_cache),
) -> IndexCredentials:
    if settings.is_governing:
        return await governing_settings.get_credentials()
    if brand_cache is None:
        raise CredentialsMissing("This site is not connected to a governing site")
    return (await brand_cache.get_config()).credentials


def get_backend_opener(
    settings: Settings = Depends(get_app_settings),
    governing_settings: GoverningSettings = Depends(get_governing_settings),
    brand_cache: Optional[BrandConfigCache] = Depends(get_brand_cache),
) -> BackendOpener:
    """
    Factory opening the search backend on demand.

    Credentials are only resolved when the backend is actually opened.
    """

    @asynccontextmanager
    async def open_backend() -> AsyncIterator[SearchBackend]:
        index_name = index_name_for(governing_scope(settings), settings.index_prefix)

        if settings.search_backend == "memory":
            yield _memory_backend(index_name)
            return

        credentials = await get_index_credentials(settings, governing_settings, brand_cache)
        backend = AlgoliaBackend(
            credentials.app_id,
            credentials.write_key,
            index_name,
            timeout=settings.fanout_timeout,
        )
        try:
            yield backend
        finally:
            await backend.aclose()

    return open_backend


def get_key_validator(
    settings: Settings = Depends(get_app_settings),
) -> Callable[[IndexCredentials], Awaitable[bool]]:
    """Checks that new credentials can write to the shared index."""

    async def validate(credentials: IndexCredentials) -> bool:
        if settings.search_backend == "memory":
            return True
        backend = AlgoliaBackend(
            credentials.app_id,
            credentials.write_key,
            index_name_for(governing_scope(settings), settings.index_prefix),
            timeout=settings.http_timeout,
        )
        try:
            return await backend.validate_key(WRITE_ACL)
        finally:
            await backend.aclose()

    return validate


def opener_for(backend: SearchBackend) -> BackendOpener:
    """Opener that always hands out an existing backend (left open)."""

    @asynccontextmanager
    async def open_backend() -> AsyncIterator[SearchBackend]:
        yield backend

    return open_backend


async def get_backend(opener: BackendOpener = Depends(get_backend_opener)) -> AsyncIterator[SearchBackend]:
    async with opener() as backend:
        yield backend


async def get_content_source(settings: Settings = Depends(get_app_settings)) -> AsyncIterator[ContentSource]:
    if not settings.content_api_url:
        yield _memory_source()
        return

    source = WordPressContentSource(
        settings.content_api_url,
        username=settings.content_api_user,
        password=settings.content_api_password.get_secret_value() or None,
        timeout=settings.http_timeout,
    )
    try:
        yield source
    finally:
        await source.aclose()


def get_record_builder(settings: Settings = Depends(get_app_settings)) -> RecordBuilder:
    return RecordBuilder(
        ScopeKey.of(settings.site_url),
        site_name=settings.site_name,
        record_size_limit=settings.record_size_limit,
    )


def get_index_writer(
    settings: Settings = Depends(get_app_settings),
    backend: SearchBackend = Depends(get_backend),
    builder: RecordBuilder = Depends(get_record_builder),
    source: ContentSource = Depends(get_content_source),
) -> IndexWriter:
    return IndexWriter(backend, builder, source, batch_size=settings.index_batch_size)


# ---------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------

def get_entity_lookup(
    settings: Settings = Depends(get_app_settings),
    governing_settings: GoverningSettings = Depends(get_governing_settings),
    brand_cache: Optional[BrandConfigCache] = Depends(get_brand_cache),
):
    if settings.is_governing:
        return governing_settings.get_entities

    async def brand_entities(scope: ScopeKey) -> Sequence[str]:
        if brand_cache is None:
            raise ScopeNotConfigured("This site is not connected to a governing site")
        return (await brand_cache.get_config()).indexable_types

    return brand_entities


def get_brand_watcher(
    entities=Depends(get_entity_lookup),
    builder: RecordBuilder = Depends(get_record_builder),
    link: Optional[GoverningLink] = Depends(get_governing_link),
) -> ChangeWatcher:
    if link is None:
        raise ScopeNotConfigured("This site is not connected to a governing site")
    return ChangeWatcher("brand", entities, builder, governing=link)


def get_governing_watcher(
    entities=Depends(get_entity_lookup),
    builder: RecordBuilder = Depends(get_record_builder),
    writer: IndexWriter = Depends(get_index_writer),
) -> ChangeWatcher:
    return ChangeWatcher("governing", entities, builder, writer=writer)


def get_search_service(
    settings: Settings = Depends(get_app_settings),
    opener: BackendOpener = Depends(get_backend_opener),
    source: ContentSource = Depends(get_content_source),
    governing_settings: GoverningSettings = Depends(get_governing_settings),
    brand_cache: Optional[BrandConfigCache] = Depends(get_brand_cache),
) -> FederatedSearch:
    planner = QueryPlanner(
        settings.site_type,
        ScopeKey.of(settings.site_url),
        governing_settings=governing_settings,
        brand_cache=brand_cache,
    )
    return FederatedSearch(planner, opener, source=source, chunk_batch=settings.chunk_fetch_batch)


def get_fanout(
    settings: Settings = Depends(get_app_settings),
    governing_settings: GoverningSettings = Depends(get_governing_settings),
    client: SyncClient = Depends(get_sync_client),
) -> BrandFanOut:
    return BrandFanOut(governing_settings, client, timeout=settings.fanout_timeout)
