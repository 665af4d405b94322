"""
Content Source Interface

The indexing core reads content through this narrow interface only. Pages
are 1-based; an empty page means the listing is exhausted.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Iterable, List, Optional, Sequence

from .models import ContentItem


class ContentSource(ABC):

    @abstractmethod
    async def list_by_type_and_status(
        self,
        types: Sequence[str],
        statuses: Sequence[str],
        page: int,
        page_size: int,
    ) -> List[ContentItem]:
        """Return one page of items whose type and status are in the given sets."""

    @abstractmethod
    async def get(self, content_id: int) -> Optional[ContentItem]:
        """Return a single item, or None when it does not exist."""

    async def aclose(self) -> None:
        return None


class InMemoryContentSource(ContentSource):
    """
    Content held in a dict, ordered by id. Used by tests and local runs.
    """

    def __init__(self, items: Iterable[ContentItem] = ()) -> None:
        self._items: Dict[int, ContentItem] = {}
        self._lock = RLock()
        for item in items:
            self.put(item)

    def put(self, item: ContentItem) -> None:
        with self._lock:
            self._items[item.id] = item

    def remove(self, content_id: int) -> None:
        with self._lock:
            self._items.pop(content_id, None)

    async def list_by_type_and_status(
        self,
        types: Sequence[str],
        statuses: Sequence[str],
        page: int,
        page_size: int,
    ) -> List[ContentItem]:
        if page < 1 or page_size < 1:
            return []
        with self._lock:
            matching = [
                item
                for _, item in sorted(self._items.items())
                if item.type in types and item.status in statuses
            ]
        start = (page - 1) * page_size
        return matching[start:start + page_size]

    async def get(self, content_id: int) -> Optional[ContentItem]:
        with self._lock:
            return self._items.get(content_id)
