"""
Governing Site Fan-out

Calls out from the governing site to every registered brand site, one site
at a time, each call with its own timeout. Every outcome is captured per
site; a failing site never stops the others.

- ``reindex_all_brands``: ask each brand to re-index itself
- ``bust_brand_caches``: tell each brand to drop its cached configuration
  (best effort; failures are logged)
"""

from __future__ import annotations

import logging
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

from ..core.errors import OneSearchError, PartialFailure
from ..index.writer import IndexWriter
from .client import SyncClient
from .governing import GoverningSettings

logger = logging.getLogger("onesearch.sync.fanout")

REINDEX_OK_MESSAGE = "Re-indexed successfully."
REINDEX_DONE_MESSAGE = "Re-indexing completed successfully."
CACHE_BUST_DONE_MESSAGE = "Brand caches cleared."


class ScopeOutcome(BaseModel):
    status: Literal["ok", "error"]
    message: str = ""


class FanOutResult(BaseModel):
    success: bool
    message: str
    results: Dict[str, ScopeOutcome] = Field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Dict[str, ScopeOutcome], success_message: str) -> "FanOutResult":
        had_errors = any(o.status == "error" for o in results.values())
        if had_errors:
            message = "\n".join(
                f"{site or '(unknown site)'}: {outcome.message or ('Error' if outcome.status == 'error' else REINDEX_OK_MESSAGE)}"
                for site, outcome in results.items()
            )
        else:
            message = success_message
        return cls(success=not had_errors, message=message, results=results)

    def raise_for_failures(self) -> None:
        if not self.success:
            raise PartialFailure(
                self.message,
                {site: o.model_dump() for site, o in self.results.items()},
            )


class BrandFanOut:
    """
    Parameters
    ----------
    governing_settings : GoverningSettings
        Registry of brand sites and their shared secrets.
    client : SyncClient
        HTTP client for the calls.
    timeout : float
        Per-brand timeout for re-index calls, in seconds.
    cache_bust_timeout : float
        Per-brand timeout for cache busts, in seconds.
    """

    def __init__(
        self,
        governing_settings: GoverningSettings,
        client: SyncClient,
        timeout: float = 30.0,
        cache_bust_timeout: float = 5.0,
    ) -> None:
        self._settings = governing_settings
        self._client = client
        self._timeout = timeout
        self._cache_bust_timeout = cache_bust_timeout

    async def reindex_all_brands(
        self,
        results: Optional[Dict[str, ScopeOutcome]] = None,
    ) -> FanOutResult:
        """
        Trigger a full re-index on every brand site.

        ``results`` may already hold outcomes (the governing site's own
        re-index); brand outcomes are added to it.
        """
        results = dict(results or {})

        for url, site in (await self._settings.get_shared_sites()).items():
            try:
                data = await self._client.trigger_reindex(url, site.api_key, timeout=self._timeout)
            except OneSearchError as exc:
                logger.error("Re-index of %s failed: %s", url, exc.message)
                results[url] = ScopeOutcome(status="error", message=exc.message)
                continue

            ok = bool(data.get("success", False))
            message = str(data.get("message") or "") or (REINDEX_OK_MESSAGE if ok else "Re-index failed.")
            results[url] = ScopeOutcome(status="ok" if ok else "error", message=message)

        return FanOutResult.from_results(results, REINDEX_DONE_MESSAGE)

    async def bust_brand_caches(self) -> FanOutResult:
        """Invalidate every brand's cached configuration. Never raises."""
        results: Dict[str, ScopeOutcome] = {}
        try:
            sites = await self._settings.get_shared_sites()
        except OneSearchError as exc:
            logger.error("Could not load brand sites for cache bust: %s", exc.message)
            return FanOutResult(success=False, message=exc.message)

        for url, site in sites.items():
            try:
                await self._client.bust_cache(url, site.api_key, timeout=self._cache_bust_timeout)
            except OneSearchError as exc:
                logger.warning("Cache bust for %s failed: %s", url, exc.message)
                results[url] = ScopeOutcome(status="error", message=exc.message)
                continue
            results[url] = ScopeOutcome(status="ok", message="Cache cleared.")

        return FanOutResult.from_results(results, CACHE_BUST_DONE_MESSAGE)


async def reindex_network(
    writer: IndexWriter,
    governing_settings: GoverningSettings,
    fanout: BrandFanOut,
) -> FanOutResult:
    """Re-index the governing site itself, then every brand site."""
    own = governing_settings.own_scope
    results: Dict[str, ScopeOutcome] = {}

    try:
        report = await writer.index_all(await governing_settings.get_entities(own), own)
    except OneSearchError as exc:
        logger.error("Re-index of %s failed: %s", own.url, exc.message)
        results[own.url] = ScopeOutcome(status="error", message=exc.message)
    else:
        results[own.url] = ScopeOutcome(
            status="ok" if report.success else "error",
            message=REINDEX_OK_MESSAGE if report.success else report.message,
        )

    return await fanout.reindex_all_brands(results)
