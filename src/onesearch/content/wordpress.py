"""
WordPress REST Content Source

Reads content items from a WordPress site through its REST API
(``/wp-json/wp/v2``). Authentication, when configured, uses an application
password over HTTP basic auth.

Paging
------
The REST API lists one post type per route, so a page of this source is the
same page number requested from every type's route, concatenated in type
order. The listing is exhausted once every route returns an empty page.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx
from bs4 import BeautifulSoup

from ..core.errors import RemoteInvalidResponse, RemoteUnreachable
from .models import Author, ContentItem, Term, Thumbnail
from .source import ContentSource

logger = logging.getLogger("onesearch.content.wordpress")

# Post types whose REST route differs from the type name
REST_BASES = {
    "post": "posts",
    "page": "pages",
    "attachment": "media",
}


def _text(value: Any) -> str:
    """Return the plain text of a ``{"rendered": html}`` field or raw string."""
    if isinstance(value, dict):
        value = value.get("rendered", "")
    if not value:
        return ""
    return BeautifulSoup(str(value), "html.parser").get_text().strip()


def _rendered(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("rendered", "") or "")
    return str(value or "")


def _parse_gmt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WordPressContentSource(ContentSource):
    """
    Content source backed by the WordPress REST API.

    Parameters
    ----------
    base_url : str
        Site root, e.g. ``https://brand.example/``.
    username, password : Optional[str]
        Application password credentials for non-public listings.
    timeout : float
        Per-request timeout in seconds.
    transport : Optional[httpx.AsyncBaseTransport]
        Injected transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/wp-json/wp/v2"
        auth = (username, password) if username and password else None
        self._client = httpx.AsyncClient(
            timeout=timeout,
            auth=auth,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: Dict[str, Any]) -> Optional[Any]:
        """
        GET a REST route, returning None for out-of-range pages and 404s.
        """
        url = f"{self.base_url}/{path}"
        try:
            resp = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise RemoteUnreachable(f"Content API request failed: {type(exc).__name__}") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code == 400:
            # WordPress answers rest_post_invalid_page_number past the last page
            try:
                code = resp.json().get("code")
            except ValueError:
                code = None
            if code == "rest_post_invalid_page_number":
                return None
        if resp.status_code >= 400:
            raise RemoteUnreachable(
                f"Content API returned HTTP {resp.status_code}",
                details={"url": url},
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteInvalidResponse("Content API returned invalid JSON") from exc

    def _to_item(self, data: Dict[str, Any]) -> ContentItem:
        embedded = data.get("_embedded") or {}

        author = None
        authors = embedded.get("author") or []
        if authors and isinstance(authors[0], dict) and "id" in authors[0]:
            raw = authors[0]
            avatars = raw.get("avatar_urls") or {}
            author = Author(
                author_id=int(raw["id"]),
                display_name=raw.get("name", ""),
                login=raw.get("slug", ""),
                posts_url=raw.get("link", ""),
                avatar=avatars.get("96") or next(iter(avatars.values()), ""),
            )

        thumbnail = None
        media = embedded.get("wp:featuredmedia") or []
        if media and isinstance(media[0], dict) and media[0].get("source_url"):
            details = media[0].get("media_details") or {}
            thumbnail = Thumbnail(
                url=media[0]["source_url"],
                width=int(details.get("width") or 0),
                height=int(details.get("height") or 0),
            )
        elif data.get("type") == "attachment" and data.get("source_url"):
            details = data.get("media_details") or {}
            thumbnail = Thumbnail(
                url=data["source_url"],
                width=int(details.get("width") or 0),
                height=int(details.get("height") or 0),
            )

        terms: Dict[str, List[Term]] = {}
        for group in embedded.get("wp:term") or []:
            for raw in group:
                taxonomy = raw.get("taxonomy", "")
                terms.setdefault(taxonomy, []).append(
                    Term(
                        term_id=int(raw["id"]),
                        name=raw.get("name", ""),
                        slug=raw.get("slug", ""),
                        taxonomy=taxonomy,
                        description=raw.get("description", "") or "",
                        parent=int(raw.get("parent") or 0),
                        count=int(raw.get("count") or 0),
                        term_link=raw.get("link", ""),
                    )
                )

        content = _rendered(data.get("content"))
        if not content and data.get("type") == "attachment":
            content = _rendered(data.get("description"))

        return ContentItem(
            id=int(data["id"]),
            type=data.get("type", "post"),
            status=data.get("status", "publish"),
            title=_text(data.get("title")),
            excerpt=_text(data.get("excerpt") or data.get("caption")),
            content=content,
            name=data.get("slug", ""),
            terms=terms,
            author=author,
            thumbnail=thumbnail,
            date_gmt=_parse_gmt(data.get("date_gmt")),
            modified_gmt=_parse_gmt(data.get("modified_gmt")),
            permalink=data.get("link", ""),
            is_sticky=bool(data.get("sticky", False)),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_by_type_and_status(
        self,
        types: Sequence[str],
        statuses: Sequence[str],
        page: int,
        page_size: int,
    ) -> List[ContentItem]:
        items: List[ContentItem] = []
        for post_type in types:
            rest_base = REST_BASES.get(post_type, post_type)
            # Attachments only ever carry the "inherit" status
            type_statuses = ["inherit"] if post_type == "attachment" else [
                s for s in statuses if s != "inherit"
            ]
            if not type_statuses:
                continue
            params = {
                "status": ",".join(type_statuses),
                "page": page,
                "per_page": page_size,
                "orderby": "id",
                "order": "asc",
                "_embed": 1,
            }
            data = await self._get(rest_base, params)
            if not data:
                continue
            if not isinstance(data, list):
                raise RemoteInvalidResponse(f"Unexpected listing shape for '{rest_base}'")
            items.extend(self._to_item(row) for row in data)

        logger.debug("Listed %s items for types=%s page=%s", len(items), list(types), page)
        return items

    async def get(self, content_id: int) -> Optional[ContentItem]:
        # The generic search route resolves an id without knowing its type
        data = await self._get("search", {"include": content_id, "type": "post"})
        if not data:
            return None
        subtype = data[0].get("subtype", "post")
        rest_base = REST_BASES.get(subtype, subtype)
        row = await self._get(f"{rest_base}/{content_id}", {"_embed": 1})
        if not row:
            return None
        return self._to_item(row)

    async def aclose(self) -> None:
        await self._client.aclose()
