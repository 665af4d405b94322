"""
Search Executor

Runs a scoped query against the shared index and orders the hits by a
composite relevance score.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..index.backend import SearchBackend
from ..scope import ScopeKey
from .planner import build_filter

logger = logging.getLogger("onesearch.search.executor")

HIGHLIGHT_PRE_TAG = '<span class="algolia-highlight">'
HIGHLIGHT_POST_TAG = "</span>"

DEFAULT_SEARCH_PARAMS: Dict[str, Any] = {
    "attributesToHighlight": ["post_title", "content", "post_excerpt"],
    "distinct": True,
    "highlightPreTag": HIGHLIGHT_PRE_TAG,
    "highlightPostTag": HIGHLIGHT_POST_TAG,
    "getRankingInfo": True,
    "typoTolerance": "min",
    "minWordSizefor1Typo": 3,
    "minWordSizefor2Typos": 6,
    "ignorePlurals": True,
    "removeStopWords": True,
    "queryType": "prefixAll",
    "optionalWords": ["the", "of", "guide"],
}


def compute_score(hit: Dict[str, Any]) -> float:
    """
    Relevance of one hit.

    Uses the backend's ``rankingScore`` when present; otherwise combines the
    ranking criteria so that user score dominates, then matched words, then
    typos, proximity and distance as penalties.
    """
    info = hit.get("_rankingInfo") or {}
    if info.get("rankingScore") is not None:
        return float(info["rankingScore"])

    return (
        float(info.get("userScore", 0)) * 1e6
        + float(info.get("words", 0)) * 1e3
        - float(info.get("nbTypos", 0)) * 1e4
        - float(info.get("proximityDistance", 0))
        - float(info.get("geoDistance", 0)) / 1000
    )


@dataclass
class SearchPage:
    hits: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 10
    scopes: List[str] = field(default_factory=list)


class SearchExecutor:

    def __init__(self, backend: SearchBackend, extra_params: Optional[Dict[str, Any]] = None) -> None:
        self.backend = backend
        self.extra_params = extra_params or {}

    async def search(
        self,
        query: str,
        scopes: Sequence[ScopeKey],
        types: Optional[Iterable[str]] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> SearchPage:
        """
        Run a search restricted to ``scopes``.

        Parameters
        ----------
        query : str
            Free-text query.
        scopes : Sequence[ScopeKey]
            Sites the results may come from. Empty means no search at all.
        types : Optional[Iterable[str]]
            Content types to restrict to; None or ``"any"`` for all.
        page : int
            1-based page number.
        per_page : int
            Hits per page.

        Returns
        -------
        SearchPage
            Hits sorted by composite score, descending.
        """
        page = max(1, int(page))
        per_page = max(1, int(per_page))

        if not scopes:
            return SearchPage(page=page, per_page=per_page)

        params = dict(DEFAULT_SEARCH_PARAMS)
        params.update(self.extra_params)
        params["filters"] = build_filter(types, scopes)
        params["page"] = page - 1
        params["hitsPerPage"] = per_page

        response = await self.backend.search(query or "", params)

        allowed = {s.url for s in scopes}
        hits = []
        for hit in response.get("hits", []):
            if hit.get("site_url") not in allowed:
                logger.warning("Dropping hit %s outside the searchable scopes", hit.get("objectID"))
                continue
            hits.append(hit)

        hits.sort(key=compute_score, reverse=True)

        return SearchPage(
            hits=hits,
            total=int(response.get("nbHits", len(hits))),
            page=page,
            per_page=per_page,
            scopes=sorted(allowed),
        )
