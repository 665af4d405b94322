"""
Search Routes

Federated search over every site this site is allowed to search. Only
published content is indexed, so the endpoint needs no authentication.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query

from ..search.service import FederatedSearch, SearchResults
from .dependencies import get_search_service

router = APIRouter(prefix="/onesearch/v1", tags=["search"])


@router.get(
    "/search",
    response_model=SearchResults,
    summary="Federated full-text search",
)
async def search(
    service: Annotated[FederatedSearch, Depends(get_search_service)],
    q: Annotated[str, Query(max_length=512)] = "",
    post_type: Annotated[Optional[List[str]], Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=100)] = 10,
    reconstruct: bool = True,
) -> SearchResults:
    """
    Search the federation.

    Parameters
    ----------
    q : str
        Query text.
    post_type : Optional[List[str]]
        Restrict to these content types (repeat the parameter; ``any`` or
        nothing searches every type).
    page, per_page : int
        1-based page and page size.
    reconstruct : bool
        Re-assemble chunked remote documents into their full content.

    Returns
    -------
    SearchResults
        ``enabled`` is false when federated search is off for this site.
    """
    return await service.search(
        q,
        types=post_type,
        page=page,
        per_page=per_page,
        reconstruct=reconstruct,
    )
