"""
SQL-backed Config Store

Persists config store entries in the ``config_entry`` table. Expired rows
read as missing and are deleted on read.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..sync.store import ConfigStore
from .models import ConfigEntry


class SqlConfigStore(ConfigStore):

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._session_factory() as session:
            entry = await session.get(ConfigEntry, key)
            if entry is None:
                return default
            if entry.expires_at is not None and self._clock() >= entry.expires_at:
                await session.delete(entry)
                await session.commit()
                return default
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._session_factory() as session:
            try:
                await session.merge(ConfigEntry(key=key, value=value, expires_at=expires_at))
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def delete(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(ConfigEntry).where(ConfigEntry.key == key))
            await session.commit()
