"""
Algolia Backend

Talks to the Algolia REST API directly with ``httpx``. Writes are
asynchronous on Algolia's side; every write waits for its task to be
published so that callers observe their own writes.

Error Model
-----------
- Missing application id or key      -> ``CredentialsMissing`` at construction
- Transport errors, non-2xx answers,
  malformed JSON, unpublished tasks  -> ``IndexUnavailable``
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, Optional, Sequence
from urllib.parse import quote

import httpx

from ..core.errors import CredentialsMissing, IndexUnavailable
from .backend import WRITE_ACL, SearchBackend
from .filters import Filter, render

logger = logging.getLogger("onesearch.index.algolia")


class AlgoliaBackend(SearchBackend):
    """
    Search backend for one Algolia index.

    Parameters
    ----------
    app_id : str
        Algolia application id.
    api_key : str
        Write (admin-scoped) API key.
    index_name : str
        Target index.
    timeout : float
        HTTP timeout for each request.
    transport : Optional[httpx.AsyncBaseTransport]
        Injected transport (tests use ``httpx.MockTransport``).
    task_poll_interval : float
        Initial delay between task status polls, doubled up to one second.
    task_max_polls : int
        Polls before a pending task is reported as a failure.
    """

    def __init__(
        self,
        app_id: str,
        api_key: str,
        index_name: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        task_poll_interval: float = 0.1,
        task_max_polls: int = 50,
    ) -> None:
        if not app_id or not api_key:
            raise CredentialsMissing("Algolia application id and write key are required")

        self.app_id = app_id
        self.index_name = index_name
        self._api_key = api_key
        self._task_poll_interval = task_poll_interval
        self._task_max_polls = task_max_polls
        self._client = httpx.AsyncClient(
            base_url=f"https://{app_id}.algolia.net",
            headers={
                "X-Algolia-Application-Id": app_id,
                "X-Algolia-API-Key": api_key,
                "Content-Type": "application/json; charset=utf-8",
            },
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _index_path(self) -> str:
        return f"/1/indexes/{quote(self.index_name, safe='')}"

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Dict[str, Any]:
        content = None
        if payload is not None:
            content = json.dumps(payload, ensure_ascii=False).encode("utf-8")

        try:
            response = await self._client.request(method, path, content=content)
        except httpx.HTTPError as exc:
            logger.error(
                "Algolia request failed (%s): %s %s, error=%s",
                type(exc).__name__,
                method,
                path,
                str(exc),
            )
            raise IndexUnavailable(f"Algolia request failed: {type(exc).__name__}") from exc

        if allow_missing and response.status_code == 404:
            return {}

        if response.status_code >= 400:
            try:
                message = response.json().get("message", "")
            except ValueError:
                message = response.text.strip()
            logger.error("Algolia answered %s for %s %s: %s", response.status_code, method, path, message)
            raise IndexUnavailable(
                f"Algolia returned HTTP {response.status_code}: {message}".rstrip(": "),
                details={"status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise IndexUnavailable("Algolia returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise IndexUnavailable("Algolia returned an unexpected response shape")
        return data

    async def _wait_for_task(self, data: Dict[str, Any]) -> None:
        task_id = data.get("taskID")
        if task_id is None:
            return

        delay = self._task_poll_interval
        for _ in range(self._task_max_polls):
            status = await self._request("GET", f"{self._index_path}/task/{task_id}")
            if status.get("status") == "published":
                return
            await asyncio.sleep(delay)
            delay = min(delay * 2, 1.0)

        raise IndexUnavailable(f"Algolia task {task_id} was not published in time")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def apply_settings(self, settings: Dict[str, Any]) -> None:
        data = await self._request("PUT", f"{self._index_path}/settings", settings)
        await self._wait_for_task(data)

    async def delete_by_filter(self, expr: Filter) -> None:
        data = await self._request(
            "POST",
            f"{self._index_path}/deleteByQuery",
            {"filters": render(expr)},
        )
        await self._wait_for_task(data)

    async def upsert_batch(self, records: Sequence[Dict[str, Any]]) -> None:
        if not records:
            return
        payload = {
            "requests": [
                {"action": "updateObject", "body": record}
                for record in records
            ]
        }
        data = await self._request("POST", f"{self._index_path}/batch", payload)
        await self._wait_for_task(data)

    async def search(self, query: str, params: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(params)
        if payload.get("filters") is not None and not isinstance(payload["filters"], str):
            payload["filters"] = render(payload["filters"])
        payload["query"] = query
        data = await self._request("POST", f"{self._index_path}/query", payload)
        data.setdefault("hits", [])
        data.setdefault("nbHits", len(data["hits"]))
        data.setdefault("page", 0)
        return data

    async def delete_index(self) -> None:
        data = await self._request("DELETE", self._index_path, allow_missing=True)
        await self._wait_for_task(data)

    async def validate_key(self, required_acl: Iterable[str] = WRITE_ACL) -> bool:
        try:
            data = await self._request("GET", f"/1/keys/{quote(self._api_key, safe='')}")
        except IndexUnavailable as exc:
            logger.warning("Algolia key validation failed: %s", exc.message)
            return False
        granted = set(data.get("acl") or [])
        return set(required_acl).issubset(granted)

    async def aclose(self) -> None:
        await self._client.aclose()
