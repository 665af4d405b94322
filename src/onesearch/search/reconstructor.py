"""
Result Reconstructor

Turns search hits back into whole documents.

- Hits from this site resolve to the real item through the content source.
- Hits from other sites become placeholder documents built from the record
  data alone. Their ids are negative (``-1 - post_id``) and so are their
  author ids (``-1000 - author_id``), so they can never collide with local
  ids.
- Remote documents split across several records get their full text back by
  fetching every chunk (in batches of document ids) and joining them in
  chunk order. A failed batch falls back to the representative hit.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from ..content.models import ContentItem
from ..content.source import ContentSource
from ..core.errors import OneSearchError
from ..index.backend import SearchBackend
from ..index.filters import any_of
from ..index.records import join_chunks
from ..scope import ScopeKey

logger = logging.getLogger("onesearch.search.reconstructor")

DEFAULT_CHUNK_BATCH = 20
CHUNK_FETCH_HITS = 1000
REMOTE_AUTHOR_OFFSET = 1000


def remote_id(post_id: int) -> int:
    return -1 - int(post_id)


def remote_author_id(author_id: int) -> int:
    return -REMOTE_AUTHOR_OFFSET - int(author_id)


def extract_highlights(hit: Dict[str, Any]) -> Dict[str, str]:
    """Highlighted field values, falling back to snippets."""
    highlights: Dict[str, str] = {}
    for source_key in ("_highlightResult", "_snippetResult"):
        for name, value in (hit.get(source_key) or {}).items():
            if name in highlights or not isinstance(value, dict):
                continue
            if "value" in value:
                highlights[name] = str(value["value"])
    return highlights


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

class RemoteAuthor(BaseModel):
    id: int
    display_name: str = ""
    link: str = ""
    avatar: str = ""

    model_config = ConfigDict(frozen=True)


class LocalDocument(BaseModel):
    kind: Literal["local"] = "local"
    item: ContentItem
    site_url: str
    site_name: str = ""
    highlights: Dict[str, str] = Field(default_factory=dict)


class RemoteDocument(BaseModel):
    kind: Literal["remote"] = "remote"
    id: int = Field(..., lt=0)
    original_id: int
    type: str
    status: str = "publish"
    title: str = ""
    name: str = ""
    excerpt: str = ""
    content: str = ""
    permalink: str = ""
    date_gmt: int = 0
    modified_gmt: int = 0
    is_sticky: bool = False
    author: Optional[RemoteAuthor] = None
    taxonomies: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    thumbnail: Dict[str, Any] = Field(default_factory=dict)
    site_url: str
    site_name: str = ""
    highlights: Dict[str, str] = Field(default_factory=dict)


Document = Annotated[Union[LocalDocument, RemoteDocument], Field(discriminator="kind")]


# ---------------------------------------------------------------------
# Reconstructor
# ---------------------------------------------------------------------

class ResultReconstructor:
    """
    Parameters
    ----------
    backend : SearchBackend
        Index to re-fetch chunks from.
    own_scope : ScopeKey
        This site; its hits resolve through ``source``.
    source : Optional[ContentSource]
        Local content. Without one, every hit becomes a placeholder.
    batch_size : int
        Document ids per chunk re-fetch query.
    """

    def __init__(
        self,
        backend: SearchBackend,
        own_scope: ScopeKey,
        source: Optional[ContentSource] = None,
        batch_size: int = DEFAULT_CHUNK_BATCH,
    ) -> None:
        self.backend = backend
        self.own_scope = own_scope
        self.source = source
        self.batch_size = batch_size

    # ------------------------------------------------------------------
    # Chunk re-fetch
    # ------------------------------------------------------------------

    async def fetch_full_contents(self, document_ids: Sequence[str]) -> Dict[str, str]:
        """
        Fetch every chunk of the given documents and join them.

        Returns
        -------
        Dict[str, str]
            Full content per document id. Documents of failed batches, and
            documents whose chunks did not all come back, are missing.
        """
        ids = list(dict.fromkeys(document_ids))
        chunks: Dict[str, List[Dict[str, Any]]] = {}

        for start in range(0, len(ids), self.batch_size):
            batch = ids[start:start + self.batch_size]
            params = {
                "filters": any_of("site_post_id", batch),
                "hitsPerPage": CHUNK_FETCH_HITS,
                "page": 0,
                "distinct": False,
                "attributesToHighlight": [],
            }
            try:
                response = await self.backend.search("", params)
            except OneSearchError as exc:
                logger.error("Chunk fetch for %d documents failed: %s", len(batch), exc.message)
                continue

            for hit in response.get("hits", []):
                chunks.setdefault(hit.get("site_post_id"), []).append(hit)

        contents: Dict[str, str] = {}
        for document_id, records in chunks.items():
            records.sort(key=lambda r: int(r.get("chunk_index", 0)))
            expected = int(records[0].get("total_chunks", len(records)))
            indexes = [int(r.get("chunk_index", 0)) for r in records]
            if indexes != list(range(expected)):
                # Only complete chunk sets are joined.
                logger.warning("Document %s: got %d of %d chunks; using the hit", document_id, len(records), expected)
                continue
            contents[document_id] = join_chunks([r.get("content", "") for r in records])
        return contents

    # ------------------------------------------------------------------
    # Document assembly
    # ------------------------------------------------------------------

    @staticmethod
    def remote_document(hit: Dict[str, Any], content: Optional[str] = None) -> RemoteDocument:
        author = None
        author_data = hit.get("post_author_data") or {}
        if author_data.get("author_id") is not None:
            author = RemoteAuthor(
                id=remote_author_id(author_data["author_id"]),
                display_name=author_data.get("author_display_name", ""),
                link=author_data.get("author_posts_url", ""),
                avatar=author_data.get("author_avatar", ""),
            )

        post_id = int(hit.get("post_id", 0))
        return RemoteDocument(
            id=remote_id(post_id),
            original_id=post_id,
            type=hit.get("post_type", "post"),
            title=hit.get("post_title", ""),
            name=hit.get("post_name", ""),
            excerpt=hit.get("post_excerpt", ""),
            content=content if content is not None else hit.get("content", ""),
            permalink=hit.get("permalink", ""),
            date_gmt=int(hit.get("post_date_gmt") or 0),
            modified_gmt=int(hit.get("post_modified_gmt") or 0),
            is_sticky=bool(hit.get("is_sticky")),
            author=author,
            taxonomies=hit.get("taxonomies") or {},
            thumbnail=hit.get("thumbnail") or {},
            site_url=hit.get("site_url", ""),
            site_name=hit.get("site_name", ""),
            highlights=extract_highlights(hit),
        )

    def _is_local(self, hit: Dict[str, Any]) -> bool:
        return self.source is not None and hit.get("site_url") == self.own_scope.url

    async def reconstruct(
        self,
        hits: Sequence[Dict[str, Any]],
        reconstruct: bool = True,
    ) -> List[Union[LocalDocument, RemoteDocument]]:
        """
        Build documents for hits, keeping the hit order.

        With ``reconstruct=False`` remote documents carry the content of the
        representative hit only.
        """
        contents: Dict[str, str] = {}
        if reconstruct:
            multi = [
                hit["site_post_id"]
                for hit in hits
                if not self._is_local(hit) and int(hit.get("total_chunks", 1)) > 1
            ]
            if multi:
                contents = await self.fetch_full_contents(multi)

        documents: List[Union[LocalDocument, RemoteDocument]] = []
        for hit in hits:
            if self._is_local(hit):
                item = await self.source.get(int(hit.get("post_id", 0)))
                if item is None:
                    logger.info("Local item %s no longer exists; dropping hit", hit.get("post_id"))
                    continue
                documents.append(
                    LocalDocument(
                        item=item,
                        site_url=self.own_scope.url,
                        site_name=hit.get("site_name", ""),
                        highlights=extract_highlights(hit),
                    )
                )
                continue

            documents.append(self.remote_document(hit, contents.get(hit.get("site_post_id"))))

        return documents
