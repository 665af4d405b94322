"""
Governing Site Settings

The governing site owns the federation configuration and persists it in the
config store:

- index credentials (write key encrypted at rest)
- the indexable entity map, one list of content types per site
- per-site search settings
- the registry of brand sites with their shared secrets (encrypted at rest)

Stored values are sanitized on the way in: URLs are normalized, unknown
sites and malformed entries are dropped.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..core.crypto import Encryptor
from ..core.errors import InvalidScopeError, ScopeNotConfigured
from ..scope import ScopeKey, normalize_url
from .models import BrandConfig, IndexCredentials, SearchScopeConfig, SharedSite, clean_types

logger = logging.getLogger("onesearch.sync.governing")

CREDENTIALS_KEY = "onesearch_algolia_credentials"
ENTITIES_KEY = "onesearch_indexable_entities"
SEARCH_SETTINGS_KEY = "onesearch_sites_search_settings"
SHARED_SITES_KEY = "onesearch_shared_sites"


class GoverningSettings:
    """
    Parameters
    ----------
    store : ConfigStore
        Persistence for every setting.
    encryptor : Encryptor
        Encrypts secrets before they reach the store.
    own_scope : ScopeKey
        The governing site itself.
    fallback_credentials : Optional[IndexCredentials]
        Credentials from the environment, used until some are stored.
    """

    def __init__(
        self,
        store,
        encryptor: Encryptor,
        own_scope: ScopeKey,
        fallback_credentials: Optional[IndexCredentials] = None,
    ) -> None:
        self._store = store
        self._encryptor = encryptor
        self.own_scope = own_scope
        self._fallback_credentials = fallback_credentials or IndexCredentials()

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def get_credentials(self) -> IndexCredentials:
        raw = await self._store.get(CREDENTIALS_KEY)
        if not raw:
            return self._fallback_credentials
        write_key = self._encryptor.decrypt(raw.get("write_key", "")) or ""
        return IndexCredentials(app_id=raw.get("app_id", ""), write_key=write_key)

    async def set_credentials(self, credentials: IndexCredentials) -> None:
        await self._store.set(
            CREDENTIALS_KEY,
            {
                "app_id": credentials.app_id.strip(),
                "write_key": self._encryptor.encrypt(credentials.write_key.strip()),
            },
        )

    # ------------------------------------------------------------------
    # Shared sites
    # ------------------------------------------------------------------

    async def get_shared_sites(self) -> Dict[str, SharedSite]:
        """Registered brand sites keyed by normalized URL."""
        sites: Dict[str, SharedSite] = {}
        for raw in await self._store.get(SHARED_SITES_KEY, []) or []:
            api_key = self._encryptor.decrypt(raw.get("api_key", "")) or ""
            if not api_key:
                continue
            site = SharedSite(url=raw["url"], name=raw.get("name", ""), api_key=api_key)
            sites[site.url] = site
        return sites

    async def set_shared_sites(self, sites: Iterable[Any]) -> List[ScopeKey]:
        """
        Replace the registry.

        Entries without a valid URL or API key are dropped.

        Returns
        -------
        List[ScopeKey]
            Sites that were registered before and are not anymore.
        """
        previous = set(await self.get_shared_sites())

        sanitized: Dict[str, SharedSite] = {}
        for raw in sites:
            try:
                site = raw if isinstance(raw, SharedSite) else SharedSite.model_validate(raw)
            except ValidationError:
                logger.warning("Ignoring invalid shared site entry %r", raw.get("url") if isinstance(raw, dict) else raw)
                continue
            if site.url == self.own_scope.url:
                continue
            sanitized[site.url] = site

        await self._store.set(
            SHARED_SITES_KEY,
            [
                {"url": s.url, "name": s.name, "api_key": self._encryptor.encrypt(s.api_key)}
                for s in sanitized.values()
            ],
        )

        removed = [ScopeKey.of(url) for url in sorted(previous - set(sanitized))]
        if removed:
            await self.prune_scopes(removed)
        return removed

    async def find_site_by_token(self, token: str) -> Optional[SharedSite]:
        if not token:
            return None
        for site in (await self.get_shared_sites()).values():
            if hmac.compare_digest(site.api_key.encode(), token.encode()):
                return site
        return None

    async def available_scopes(self) -> List[str]:
        return [self.own_scope.url] + sorted(await self.get_shared_sites())

    async def _known(self) -> set:
        return set(await self.available_scopes())

    # ------------------------------------------------------------------
    # Indexable entities
    # ------------------------------------------------------------------

    async def get_entity_map(self) -> Dict[str, List[str]]:
        return dict(await self._store.get(ENTITIES_KEY, {}) or {})

    async def set_entity_map(self, entities: Dict[str, Any]) -> Dict[str, List[str]]:
        known = await self._known()
        sanitized: Dict[str, List[str]] = {}
        for url, types in (entities or {}).items():
            try:
                scope = normalize_url(url)
            except InvalidScopeError:
                logger.warning("Ignoring entities for invalid site URL %r", url)
                continue
            if scope not in known:
                logger.warning("Ignoring entities for unregistered site %s", scope)
                continue
            sanitized[scope] = clean_types(types)

        await self._store.set(ENTITIES_KEY, sanitized)
        return sanitized

    async def get_entities(self, scope: ScopeKey) -> List[str]:
        return list((await self.get_entity_map()).get(ScopeKey.of(scope).url, []))

    # ------------------------------------------------------------------
    # Search settings
    # ------------------------------------------------------------------

    async def get_search_settings(self) -> Dict[str, SearchScopeConfig]:
        raw = await self._store.get(SEARCH_SETTINGS_KEY, {}) or {}
        return {url: SearchScopeConfig.model_validate(value) for url, value in raw.items()}

    async def set_search_settings(self, settings: Dict[str, Any]) -> Dict[str, SearchScopeConfig]:
        """
        Replace the per-site search settings.

        Each value is ``{"enabled": bool, "searchable_scopes": [url, ...]}``
        (the ``algolia_enabled`` / ``searchable_sites`` spelling is accepted
        too). Searchable sites unknown to the registry are dropped.
        """
        known = await self._known()
        sanitized: Dict[str, SearchScopeConfig] = {}
        for url, value in (settings or {}).items():
            try:
                scope = normalize_url(url)
            except InvalidScopeError:
                logger.warning("Ignoring search settings for invalid site URL %r", url)
                continue
            if scope not in known or not isinstance(value, dict):
                continue
            config = SearchScopeConfig(
                enabled=bool(value.get("enabled", value.get("algolia_enabled", False))),
                searchable_scopes=value.get("searchable_scopes", value.get("searchable_sites", [])),
            )
            config.searchable_scopes = [u for u in config.searchable_scopes if u in known]
            sanitized[scope] = config

        await self._store.set(
            SEARCH_SETTINGS_KEY,
            {url: config.model_dump() for url, config in sanitized.items()},
        )
        return sanitized

    async def get_search_scope(self, scope: ScopeKey) -> SearchScopeConfig:
        return (await self.get_search_settings()).get(ScopeKey.of(scope).url, SearchScopeConfig())

    # ------------------------------------------------------------------
    # Removal and brand configuration
    # ------------------------------------------------------------------

    async def prune_scopes(self, scopes: Iterable[ScopeKey]) -> None:
        """Forget entity and search settings of removed sites."""
        urls = {ScopeKey.of(s).url for s in scopes}

        entities = await self.get_entity_map()
        await self._store.set(ENTITIES_KEY, {u: t for u, t in entities.items() if u not in urls})

        settings = await self.get_search_settings()
        pruned = {}
        for url, config in settings.items():
            if url in urls:
                continue
            config.searchable_scopes = [u for u in config.searchable_scopes if u not in urls]
            pruned[url] = config.model_dump()
        await self._store.set(SEARCH_SETTINGS_KEY, pruned)

    async def brand_config_for(self, scope: ScopeKey) -> BrandConfig:
        """
        Consolidated configuration for one registered brand site.

        Raises
        ------
        ScopeNotConfigured
            If the site is not registered.
        """
        scope = ScopeKey.of(scope)
        if scope.url not in await self.get_shared_sites():
            raise ScopeNotConfigured(f"{scope.url} is not a registered brand site")

        return BrandConfig(
            credentials=await self.get_credentials(),
            search_scope=await self.get_search_scope(scope),
            indexable_types=await self.get_entities(scope),
            available_scopes=await self.available_scopes(),
        )
