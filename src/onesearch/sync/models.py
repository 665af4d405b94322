"""
Federation Configuration Models

Configuration owned by the governing site and consumed by brand sites.

Wire Format
-----------
The consolidated brand configuration travels as::

    {
      "success": true,
      "algolia_credentials": {"app_id": "...", "write_key": "..."},
      "search_settings": {"algolia_enabled": true, "searchable_sites": [...]},
      "indexable_entities": ["post", "page"],
      "available_sites": ["https://brand.example/", ...]
    }
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.errors import InvalidScopeError, RemoteInvalidResponse
from ..scope import ScopeKey, normalize_url

logger = logging.getLogger("onesearch.sync.models")


def clean_urls(values: Any) -> List[str]:
    """Normalize a URL list, dropping invalid entries and duplicates."""
    if not isinstance(values, (list, tuple)):
        return []
    urls: List[str] = []
    for value in values:
        try:
            url = normalize_url(value)
        except InvalidScopeError:
            logger.warning("Ignoring invalid site URL %r", value)
            continue
        if url not in urls:
            urls.append(url)
    return urls


def clean_types(values: Any) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return []
    types: List[str] = []
    for value in values:
        if isinstance(value, str) and value.strip() and value.strip() not in types:
            types.append(value.strip())
    return types


class IndexCredentials(BaseModel):
    app_id: str = ""
    write_key: str = ""

    model_config = ConfigDict(extra="ignore")

    @property
    def complete(self) -> bool:
        return bool(self.app_id and self.write_key)


class SearchScopeConfig(BaseModel):
    """Whether a site searches the federation, and which sites it searches."""

    enabled: bool = False
    searchable_scopes: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("searchable_scopes", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> List[str]:
        return clean_urls(v)

    def resolve(self, own: ScopeKey) -> List[ScopeKey]:
        """Searchable scopes with the site's own scope always included."""
        if not self.enabled:
            return []
        urls = list(self.searchable_scopes)
        if own.url not in urls:
            urls.insert(0, own.url)
        return [ScopeKey.of(u) for u in urls]


class SharedSite(BaseModel):
    """A brand site registered with the governing site."""

    url: str
    name: str = ""
    api_key: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="ignore")

    @field_validator("url", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> str:
        return normalize_url(v)

    @property
    def scope(self) -> ScopeKey:
        return ScopeKey.of(self.url)


class BrandConfig(BaseModel):
    """Everything a brand site needs from the governing site."""

    credentials: IndexCredentials = Field(default_factory=IndexCredentials)
    search_scope: SearchScopeConfig = Field(default_factory=SearchScopeConfig)
    indexable_types: List[str] = Field(default_factory=list)
    available_scopes: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("indexable_types", mode="before")
    @classmethod
    def _types(cls, v: Any) -> List[str]:
        return clean_types(v)

    @field_validator("available_scopes", mode="before")
    @classmethod
    def _scopes(cls, v: Any) -> List[str]:
        return clean_urls(v)

    @classmethod
    def disabled(cls) -> "BrandConfig":
        return cls()

    def searchable_scopes(self, own: ScopeKey) -> List[ScopeKey]:
        """
        Resolved searchable scopes, restricted to the sites the governing
        site still knows about.
        """
        scopes = self.search_scope.resolve(own)
        if self.available_scopes:
            allowed = set(self.available_scopes)
            scopes = [s for s in scopes if s.url in allowed]
        return scopes

    # ------------------------------------------------------------------
    # Wire conversion
    # ------------------------------------------------------------------

    def to_wire(self) -> Dict[str, Any]:
        return {
            "success": True,
            "algolia_credentials": {
                "app_id": self.credentials.app_id,
                "write_key": self.credentials.write_key,
            },
            "search_settings": {
                "algolia_enabled": self.search_scope.enabled,
                "searchable_sites": list(self.search_scope.searchable_scopes),
            },
            "indexable_entities": list(self.indexable_types),
            "available_sites": list(self.available_scopes),
        }

    @classmethod
    def from_wire(cls, data: Any) -> "BrandConfig":
        """
        Validate and sanitize a brand-config response body.

        Raises
        ------
        RemoteInvalidResponse
            If the body is not a successful brand-config payload.
        """
        if not isinstance(data, dict) or not data.get("success"):
            message = data.get("message") if isinstance(data, dict) else None
            raise RemoteInvalidResponse(message or "Governing site did not return a brand configuration")

        credentials = data.get("algolia_credentials") or {}
        search = data.get("search_settings") or {}
        if not isinstance(credentials, dict) or not isinstance(search, dict):
            raise RemoteInvalidResponse("Malformed brand configuration")

        try:
            return cls(
                credentials=IndexCredentials(
                    app_id=str(credentials.get("app_id") or ""),
                    write_key=str(credentials.get("write_key") or ""),
                ),
                search_scope=SearchScopeConfig(
                    enabled=bool(search.get("algolia_enabled", False)),
                    searchable_scopes=search.get("searchable_sites") or [],
                ),
                indexable_types=data.get("indexable_entities") or [],
                available_scopes=data.get("available_sites") or [],
            )
        except ValidationError as exc:
            raise RemoteInvalidResponse("Malformed brand configuration") from exc
