"""
Federated search: plan, execute, reconstruct.

The backend is only opened once the planner has found something to search,
so a site with federated search disabled never needs index credentials.
"""

from __future__ import annotations

from typing import AsyncContextManager, Callable, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..content.source import ContentSource
from ..index.backend import SearchBackend
from .executor import SearchExecutor
from .planner import QueryPlanner
from .reconstructor import DEFAULT_CHUNK_BATCH, Document, ResultReconstructor

BackendOpener = Callable[[], AsyncContextManager[SearchBackend]]


class SearchResults(BaseModel):
    enabled: bool
    total: int = 0
    page: int = 1
    per_page: int = 10
    scopes: List[str] = Field(default_factory=list)
    documents: List[Document] = Field(default_factory=list)


class FederatedSearch:
    """
    Parameters
    ----------
    planner : QueryPlanner
        Resolves the searchable scopes.
    open_backend : BackendOpener
        Opens (and afterwards closes) the search backend.
    source : Optional[ContentSource]
        Local content for this site's own hits.
    chunk_batch : int
        Document ids per chunk re-fetch query.
    """

    def __init__(
        self,
        planner: QueryPlanner,
        open_backend: BackendOpener,
        source: Optional[ContentSource] = None,
        chunk_batch: int = DEFAULT_CHUNK_BATCH,
    ) -> None:
        self.planner = planner
        self._open_backend = open_backend
        self._source = source
        self._chunk_batch = chunk_batch

    async def search(
        self,
        query: str,
        types: Optional[Iterable[str]] = None,
        page: int = 1,
        per_page: int = 10,
        reconstruct: bool = True,
    ) -> SearchResults:
        scopes = await self.planner.resolve_searchable_scopes()
        if not scopes:
            return SearchResults(enabled=False, page=page, per_page=per_page)

        async with self._open_backend() as backend:
            result = await SearchExecutor(backend).search(
                query, scopes, types=types, page=page, per_page=per_page
            )
            reconstructor = ResultReconstructor(
                backend,
                self.planner.own_scope,
                source=self._source,
                batch_size=self._chunk_batch,
            )
            documents = await reconstructor.reconstruct(result.hits, reconstruct=reconstruct)

        return SearchResults(
            enabled=True,
            total=result.total,
            page=result.page,
            per_page=result.per_page,
            scopes=result.scopes,
            documents=documents,
        )
