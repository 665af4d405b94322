"""
Brand Configuration Cache

Brand sites read their federation configuration (index credentials, search
scope, indexable types, available sites) from the governing site once and
keep it in the config store for a week. The governing site invalidates the
cache whenever that configuration changes.

A fresh cache entry is always served without any network call.
"""

from __future__ import annotations

import logging

from ..core.errors import OneSearchError
from .client import GoverningLink
from .models import BrandConfig
from .store import ConfigStore

logger = logging.getLogger("onesearch.sync.cache")

BRAND_CONFIG_KEY = "onesearch_brand_config_cache"
WEEK_IN_SECONDS = 7 * 24 * 60 * 60


class BrandConfigCache:
    """
    Parameters
    ----------
    store : ConfigStore
        Where the cached configuration lives.
    governing : GoverningLink
        Connection used to fetch the configuration on a miss.
    ttl : float
        Lifetime of a cached configuration, in seconds.
    """

    def __init__(
        self,
        store: ConfigStore,
        governing: GoverningLink,
        ttl: float = WEEK_IN_SECONDS,
    ) -> None:
        self._store = store
        self._governing = governing
        self._ttl = ttl

    async def get_config(self) -> BrandConfig:
        """
        Return the cached configuration, fetching it on a miss.

        Raises
        ------
        RemoteUnreachable, RemoteInvalidResponse
            If the governing site cannot provide a valid configuration.
        """
        cached = await self._store.get(BRAND_CONFIG_KEY)
        if cached is not None:
            return BrandConfig.model_validate(cached)

        data = await self._governing.fetch_brand_config()
        config = BrandConfig.from_wire(data)
        await self._store.set(BRAND_CONFIG_KEY, config.model_dump(mode="json"), ttl=self._ttl)
        logger.info("Cached brand configuration from %s", self._governing.governing_url)
        return config

    async def get_config_or_default(self) -> BrandConfig:
        """The configuration, or a disabled one when it cannot be fetched."""
        try:
            return await self.get_config()
        except OneSearchError as exc:
            logger.warning("Brand configuration unavailable, search disabled: %s", exc.message)
            return BrandConfig.disabled()

    async def invalidate(self) -> None:
        await self._store.delete(BRAND_CONFIG_KEY)
        logger.info("Brand configuration cache cleared")
