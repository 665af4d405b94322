"""
Brand Site Routes

Endpoints served by a brand site. The governing site calls them with the
brand's shared secret to drop the cached configuration or to trigger a full
re-index; the local content store reports lifecycle transitions through
``content-change``.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends

from ..auth.models import AdminContext, SiteContext
from ..auth.security import require_admin, require_token_or_admin
from ..content.source import ContentSource
from ..index.watcher import ChangeWatcher, ContentChangeEvent
from ..index.writer import IndexWriter
from ..sync.cache import BrandConfigCache
from .dependencies import get_brand_watcher, get_content_source, get_index_writer, require_brand_cache
from .models import ContentChangeRequest, OperationResponse

logger = logging.getLogger("onesearch.api.brand")

router = APIRouter(prefix="/onesearch/v1", tags=["brand"])


# ---------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------

async def _bust(site: SiteContext, cache: BrandConfigCache) -> OperationResponse:
    await cache.invalidate()
    logger.info("Brand configuration cache cleared (%s)", site.via)
    return OperationResponse(success=True, message="Cache cleared.")


@router.delete("/brand-config", response_model=OperationResponse)
async def bust_brand_config(
    site: Annotated[SiteContext, Depends(require_token_or_admin)],
    cache: Annotated[BrandConfigCache, Depends(require_brand_cache)],
) -> OperationResponse:
    return await _bust(site, cache)


@router.post("/bust-search-settings-cache", response_model=OperationResponse)
async def bust_search_settings_cache(
    site: Annotated[SiteContext, Depends(require_token_or_admin)],
    cache: Annotated[BrandConfigCache, Depends(require_brand_cache)],
) -> OperationResponse:
    return await _bust(site, cache)


# ---------------------------------------------------------------------
# Indexing
# ---------------------------------------------------------------------

@router.post("/re-index", response_model=OperationResponse)
async def reindex(
    site: Annotated[SiteContext, Depends(require_token_or_admin)],
    cache: Annotated[BrandConfigCache, Depends(require_brand_cache)],
    writer: Annotated[IndexWriter, Depends(get_index_writer)],
) -> OperationResponse:
    """
    Replace this site's records in the shared index.

    The content types come from the governing site's entity map; writes go
    directly to the shared index with the credentials it hands out.
    """
    config = await cache.get_config()
    report = await writer.index_all(config.indexable_types)
    return OperationResponse(success=report.success, message=report.message)


@router.post("/content-change")
async def content_change(
    req: ContentChangeRequest,
    admin: Annotated[AdminContext, Depends(require_admin)],
    watcher: Annotated[ChangeWatcher, Depends(get_brand_watcher)],
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
