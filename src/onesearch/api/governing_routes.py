"""
Governing Site Routes

Endpoints served by the governing site:

- configuration consumed by brand sites (``brand-config``,
  ``algolia-credentials``, ``searchable-sites``)
- federation settings managed by administrators (entities, search settings,
  credentials, brand registry); every change busts the brand caches
- indexing (network-wide re-index, single-document pushes from brands,
  local content changes)
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, status

from ..auth.models import AdminContext, SiteContext
from ..auth.security import require_admin, require_site_token, require_token_or_admin
from ..config import Settings
from ..content.source import ContentSource
from ..core.errors import CredentialsMissing, ScopeNotConfigured
from ..index.records import RecordBuilder
from ..index.watcher import ChangeWatcher, ContentChangeEvent
from ..index.writer import IndexWriter
from ..scope import ScopeKey
from ..search.service import BackendOpener
from ..sync.fanout import BrandFanOut, reindex_network
from ..sync.governing import GoverningSettings
from ..sync.models import IndexCredentials
from .dependencies import (
    get_app_settings,
    get_backend_opener,
    get_content_source,
    get_fanout,
    get_governing_settings,
    get_governing_watcher,
    get_index_writer,
    get_key_validator,
    get_record_builder,
)
from .models import (
    ContentChangeRequest,
    CredentialsRequest,
    EntitiesRequest,
    ReindexPostRequest,
    SearchSettingsRequest,
    SharedSitesRequest,
)

logger = logging.getLogger("onesearch.api.governing")

router = APIRouter(prefix="/onesearch/v1", tags=["governing"])


# ---------------------------------------------------------------------
# Brand configuration
# ---------------------------------------------------------------------

@router.get("/brand-config", summary="Consolidated configuration for the calling brand")
async def brand_config(
    site: Annotated[SiteContext, Depends(require_site_token)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
) -> Dict[str, Any]:
    config = await governing_settings.brand_config_for(ScopeKey.of(site.site_url))
    return config.to_wire()


@router.get("/algolia-credentials")
async def get_credentials(
    site: Annotated[SiteContext, Depends(require_token_or_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
) -> Dict[str, Any]:
    credentials = await governing_settings.get_credentials()
    if not credentials.complete:
        raise CredentialsMissing("Index credentials are not configured on the governing site")
    return {"success": True, "app_id": credentials.app_id, "write_key": credentials.write_key}


@router.get("/searchable-sites")
async def searchable_sites(
    site: Annotated[SiteContext, Depends(require_token_or_admin)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
) -> Dict[str, Any]:
    shared = await governing_settings.get_shared_sites()
    sites = [{"url": governing_settings.own_scope.url, "name": settings.site_name}]
    sites += [{"url": url, "name": s.name} for url, s in sorted(shared.items())]
    return {"success": True, "sites": sites}


# ---------------------------------------------------------------------
# Federation settings (admin)
# ---------------------------------------------------------------------

@router.get("/indexable-entities")
async def get_entities(
    admin: Annotated[AdminContext, Depends(require_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
) -> Dict[str, Any]:
    return {"success": True, "entities": await governing_settings.get_entity_map()}


@router.post("/indexable-entities")
async def set_entities(
    req: EntitiesRequest,
    admin: Annotated[AdminContext, Depends(require_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
    fanout: Annotated[BrandFanOut, Depends(get_fanout)],
) -> Dict[str, Any]:
    entities = await governing_settings.set_entity_map(req.entities)
    busted = await fanout.bust_brand_caches()
    return {"success": True, "entities": entities, "cache": busted.model_dump()}


@router.get("/search-settings")
async def get_search_settings(
    admin: Annotated[AdminContext, Depends(require_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
) -> Dict[str, Any]:
    current = await governing_settings.get_search_settings()
    return {"success": True, "settings": {url: c.model_dump() for url, c in current.items()}}


@router.post("/search-settings")
async def set_search_settings(
    req: SearchSettingsRequest,
    admin: Annotated[AdminContext, Depends(require_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
    fanout: Annotated[BrandFanOut, Depends(get_fanout)],
) -> Dict[str, Any]:
    saved = await governing_settings.set_search_settings(req.settings)
    busted = await fanout.bust_brand_caches()
    return {
        "success": True,
        "settings": {url: c.model_dump() for url, c in saved.items()},
        "cache": busted.model_dump(),
    }


@router.post("/algolia-credentials")
async def set_credentials(
    req: CredentialsRequest,
    admin: Annotated[AdminContext, Depends(require_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
    validate_key: Annotated[Callable[[IndexCredentials], Awaitable[bool]], Depends(get_key_validator)],
    fanout: Annotated[BrandFanOut, Depends(get_fanout)],
) -> Dict[str, Any]:
    credentials = IndexCredentials(app_id=req.app_id.strip(), write_key=req.write_key.strip())
    if not await validate_key(credentials):
        raise CredentialsMissing("The key cannot add and delete records in the index")

    await governing_settings.set_credentials(credentials)
    logger.info("Index credentials updated by %s", admin.username)
    busted = await fanout.bust_brand_caches()
    return {"success": True, "message": "Credentials saved.", "cache": busted.model_dump()}


@router.get("/shared-sites")
async def get_shared_sites(
    admin: Annotated[AdminContext, Depends(require_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
) -> Dict[str, Any]:
    sites = await governing_settings.get_shared_sites()
    return {"success": True, "sites": [{"url": url, "name": s.name} for url, s in sorted(sites.items())]}


@router.post("/shared-sites")
async def set_shared_sites(
    req: SharedSitesRequest,
    admin: Annotated[AdminContext, Depends(require_admin)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
    open_backend: Annotated[BackendOpener, Depends(get_backend_opener)],
    builder: Annotated[RecordBuilder, Depends(get_record_builder)],
    fanout: Annotated[BrandFanOut, Depends(get_fanout)],
) -> Dict[str, Any]:
    removed = await governing_settings.set_shared_sites([s.model_dump() for s in req.sites])

    if removed:
        logger.info("Removing records of %s", ", ".join(s.url for s in removed))
        async with open_backend() as backend:
            await IndexWriter(backend, builder).delete_scopes(removed)

    busted = await fanout.bust_brand_caches()
    return {
        "success": True,
        "removed": [s.url for s in removed],
        "cache": busted.model_dump(),
    }


# ---------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------

@router.post("/re-index", summary="Re-index the governing site and every brand")
async def reindex(
    admin: Annotated[AdminContext, Depends(require_admin)],
    writer: Annotated[IndexWriter, Depends(get_index_writer)],
    governing_settings: Annotated[GoverningSettings, Depends(get_governing_settings)],
    fanout: Annotated[BrandFanOut, Depends(get_fanout)],
) -> Dict[str, Any]:
    result = await reindex_network(writer, governing_settings, fanout)
    return result.model_dump()


@router.post("/reindex-post", summary="Apply a brand's single-document change")
async def reindex_post(
    req: ReindexPostRequest,
    site: Annotated[SiteContext, Depends(require_site_token)],
    watcher: Annotated[ChangeWatcher, Depends(get_governing_watcher)],
) -> Dict[str, Any]:
    scope = ScopeKey.of(site.site_url)
    if ScopeKey.of(req.site_url) != scope:
        raise ScopeNotConfigured(f"Token does not belong to {req.site_url}")

    result = await watcher.handle(
        ContentChangeEvent(
            scope=scope,
            content_id=req.post_id,
            content_type=req.post_type,
            old_status=req.old_status,
            new_status=req.post_status,
            records=req.records,
        )
    )
    return {"success": result.ok, **result.model_dump()}


@router.post("/content-change", status_code=status.HTTP_200_OK)
async def content_change(
    req: ContentChangeRequest,
    admin: Annotated[AdminContext, Depends(require_admin)],
    watcher: Annotated[ChangeWatcher, Depends(get_governing_watcher)],
    source: Annotated[ContentSource, Depends(get_content_source)],
) -> Dict[str, Any]:
    result = await watcher.handle(
        ContentChangeEvent(
            scope=watcher.builder.scope,
            content_id=req.post_id,
            content_type=req.post_type,
            old_status=req.old_status,
            new_status=req.post_status,
            item=await source.get(req.post_id),
        )
    )
    return {"success": result.ok, **result.model_dump()}
