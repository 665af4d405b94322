"""
Config Store

Keyed JSON values with an optional time-to-live. Holds the governing site's
federation settings and the brand site's cached brand configuration.

Design choices
--------------
- Values are JSON-compatible (dicts, lists, strings, numbers).
- Expired entries read as missing.
- ``MemoryConfigStore`` is process-local and guarded by a re-entrant lock;
  ``SqlConfigStore`` (``onesearch.db``) persists across restarts.
- Copy-on-read semantics: callers cannot mutate stored values.
"""

from __future__ import annotations

import copy
import time
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Callable, Dict, Optional, Tuple


class ConfigStore(ABC):

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value``; with ``ttl`` (seconds) it expires after that long."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class MemoryConfigStore(ConfigStore):
    """
    In-memory store.

    Parameters
    ----------
    clock : Callable[[], float]
        Time source in seconds; tests inject a fake clock.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = RLock()
        self._clock = clock

    async def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return default
            return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._entries[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
