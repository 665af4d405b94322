"""
Search Backend Interface

Everything the service needs from a hosted search index. Implementations
raise ``IndexUnavailable`` for any backend-side failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Sequence

from ..scope import ScopeKey
from .filters import Filter

# Every site in the federation writes into the governing site's index
INDEX_NAME_TEMPLATE = "{prefix}_{host}_wp_posts"

WRITE_ACL = ("addObject", "deleteObject")


def index_name_for(governing: ScopeKey, prefix: str = "onesearch") -> str:
    """Name of the shared index owned by a governing site."""
    host = governing.host.replace(".", "_").replace(":", "_")
    return INDEX_NAME_TEMPLATE.format(prefix=prefix, host=host)


class SearchBackend(ABC):

    index_name: str

    @abstractmethod
    async def apply_settings(self, settings: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete_by_filter(self, expr: Filter) -> None:
        ...

    @abstractmethod
    async def upsert_batch(self, records: Sequence[Dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def search(self, query: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run one query.

        Returns
        -------
        Dict[str, Any]
            ``{"hits": [...], "nbHits": int, "page": int, "nbPages": int}``
            with a zero-based ``page``.
        """

    @abstractmethod
    async def delete_index(self) -> None:
        ...

    @abstractmethod
    async def validate_key(self, required_acl: Iterable[str] = WRITE_ACL) -> bool:
        """Whether the configured key grants every permission in ``required_acl``."""

    async def aclose(self) -> None:
        return None
