"""
Federated Query Planner

Decides which sites a search may see and turns that, plus an optional type
restriction, into a filter expression.

Scope resolution
----------------
- governing site: its own stored search settings
- brand site: the cached brand configuration, restricted to the sites the
  governing site still lists as available
- disabled search, or nothing resolvable: no scopes, no query
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Literal, Optional, Sequence

from ..index.filters import Filter, all_of, any_of
from ..scope import ScopeKey

logger = logging.getLogger("onesearch.search.planner")

ANY_TYPE = "any"


def build_filter(types: Optional[Iterable[str]], scopes: Sequence[ScopeKey]) -> Optional[Filter]:
    """
    ``(type OR ...) AND (site OR ...)``, omitting the type clause when no
    specific type is requested.
    """
    wanted = [t for t in (types or []) if t and t != ANY_TYPE]
    if ANY_TYPE in (types or []):
        wanted = []
    return all_of(
        any_of("post_type", wanted),
        any_of("site_url", [s.url for s in scopes]),
    )


class QueryPlanner:
    """
    Parameters
    ----------
    role : "governing" | "brand"
    own_scope : ScopeKey
    governing_settings : Optional[GoverningSettings]
        Source of search settings on the governing site.
    brand_cache : Optional[BrandConfigCache]
        Source of search settings on a brand site.
    """

    def __init__(
        self,
        role: Literal["governing", "brand"],
        own_scope: ScopeKey,
        governing_settings=None,
        brand_cache=None,
    ) -> None:
        self.role = role
        self.own_scope = own_scope
        self._governing_settings = governing_settings
        self._brand_cache = brand_cache

    async def resolve_searchable_scopes(self) -> List[ScopeKey]:
        if self.role == "governing":
            if self._governing_settings is None:
                return []
            config = await self._governing_settings.get_search_scope(self.own_scope)
            return config.resolve(self.own_scope)

        if self._brand_cache is None:
            return []
        config = await self._brand_cache.get_config_or_default()
        return config.searchable_scopes(self.own_scope)

    def build_filter(
        self,
        types: Optional[Iterable[str]],
        scopes: Sequence[ScopeKey],
    ) -> Optional[Filter]:
        return build_filter(types, scopes)
