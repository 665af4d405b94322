"""
Cross-Site Sync Client

HTTP client for the calls sites make to each other under ``/onesearch/v1``.
Every call carries the shared secret in the ``X-OneSearch-Token`` header.

Error Model
-----------
- Timeouts and transport errors          -> ``RemoteUnreachable``
- Non-2xx answers                        -> ``RemoteUnreachable`` whose message
  is the body's ``message`` field, or the stripped body text
- Bodies that are not a JSON object      -> ``RemoteInvalidResponse``
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..core.errors import RemoteInvalidResponse, RemoteUnreachable
from ..scope import ScopeKey

logger = logging.getLogger("onesearch.sync.client")

TOKEN_HEADER = "X-OneSearch-Token"
ORIGIN_HEADER = "X-OneSearch-Origin"
API_PREFIX = "onesearch/v1"


def endpoint(site_url: str, path: str) -> str:
    return f"{ScopeKey.of(site_url).url}{API_PREFIX}/{path.lstrip('/')}"


class SyncClient:
    """
    Parameters
    ----------
    timeout : float
        Default per-call timeout in seconds.
    transport : Optional[httpx.AsyncBaseTransport]
        Injected transport (tests use ``httpx.MockTransport``).
    origin : Optional[str]
        URL of the calling site, sent so the receiver can check it against
        the token's owner.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        origin: Optional[str] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if origin:
            headers[ORIGIN_HEADER] = ScopeKey.of(origin).url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport, headers=headers)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        token: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": {TOKEN_HEADER: token}}
        if payload is not None:
            kwargs["json"] = payload
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("%s %s timed out", method, url)
            raise RemoteUnreachable(f"Request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed (%s): %s", method, url, type(exc).__name__, str(exc))
            raise RemoteUnreachable(f"Failed to connect to {url}: {type(exc).__name__}") from exc

        if response.status_code >= 300:
            message = ""
            try:
                body = response.json()
                if isinstance(body, dict):
                    message = str(body.get("message") or "")
            except ValueError:
                pass
            message = message or response.text.strip() or f"HTTP {response.status_code}"
            raise RemoteUnreachable(message, details={"status": response.status_code, "url": url})

        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteInvalidResponse(f"Invalid JSON response from {url}") from exc
        if not isinstance(data, dict):
            raise RemoteInvalidResponse(f"Unexpected response shape from {url}")
        return data

    # ------------------------------------------------------------------
    # Protocol calls
    # ------------------------------------------------------------------

    async def health_check(self, site_url: str, token: str) -> Dict[str, Any]:
        return await self.request("GET", endpoint(site_url, "health-check"), token)

    async def fetch_brand_config(self, governing_url: str, token: str) -> Dict[str, Any]:
        return await self.request("GET", endpoint(governing_url, "brand-config"), token)

    async def push_change(self, governing_url: str, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", endpoint(governing_url, "reindex-post"), token, payload)

    async def trigger_reindex(self, brand_url: str, token: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        return await self.request("POST", endpoint(brand_url, "re-index"), token, {}, timeout=timeout)

    async def bust_cache(self, brand_url: str, token: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        return await self.request("DELETE", endpoint(brand_url, "brand-config"), token, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()


class GoverningLink:
    """A brand site's connection to its governing site."""

    def __init__(self, client: SyncClient, governing_url: str, api_key: str) -> None:
        self.client = client
        self.governing_url = ScopeKey.of(governing_url).url
        self._api_key = api_key

    async def fetch_brand_config(self) -> Dict[str, Any]:
        return await self.client.fetch_brand_config(self.governing_url, self._api_key)

    async def push_change(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.push_change(self.governing_url, self._api_key, payload)
