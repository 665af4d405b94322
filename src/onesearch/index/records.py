"""
Index Records

Turns one content item into one or more size-bounded index records.

Chunking Model
--------------
- Every record carries the same base fields (title, permalink, author,
  taxonomies, ...) plus ``content``, ``chunk_index`` and ``total_chunks``.
- The space left for ``content`` is the record size limit minus the encoded
  size of the base record, measured with a worst-case ``objectID`` and chunk
  counters so that every chunk of a document fits.
- Content that does not fit is split on word boundaries by a
  ``RecursiveCharacterTextSplitter`` whose length function is the
  JSON-escaped UTF-8 size. Pieces concatenate back to the original text;
  every chunk after the first is prefixed with ``CONTINUATION_MARKER``.
- ``objectID = <site key>_<content id>_<chunk index>``, so re-indexing the
  same item overwrites its previous records.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import CData, Comment
from langchain_text_splitters import RecursiveCharacterTextSplitter
from pydantic import BaseModel, ConfigDict, Field

from ..content.models import ContentItem
from ..core.errors import RecordOverBudget
from ..scope import ScopeKey

logger = logging.getLogger("onesearch.index.records")


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

DEFAULT_RECORD_SIZE_LIMIT = 9000
CONTINUATION_MARKER = "… "

# Placeholder used when sizing the chunk fields of the base record
_WORST_CASE_CHUNK = 99999

# Largest JSON-escaped size of one character (``\u001f``)
_MAX_CHAR_BYTES = 6

_BLOCK_TAGS = [
    "p", "div", "br", "li", "ul", "ol", "tr", "table", "section", "article",
    "header", "footer", "blockquote", "pre", "figure", "figcaption",
    "h1", "h2", "h3", "h4", "h5", "h6",
]

INDEX_SETTINGS: Dict[str, Any] = {
    "attributeForDistinct": "site_post_id",
    "distinct": True,
    "attributesForFaceting": [
        "filterOnly(site_post_id)",
        "filterOnly(site_url)",
        "filterOnly(post_type)",
        "filterOnly(post_author_data.author_display_name)",
    ],
    "attributesToSnippet": ["post_title:20", "content:40"],
    "customRanking": ["desc(is_sticky)", "desc(post_date_gmt)", "asc(chunk_index)"],
    "searchableAttributes": ["unordered(post_title)", "unordered(content)"],
    "snippetEllipsisText": "…",
}


def get_index_settings() -> Dict[str, Any]:
    return json.loads(json.dumps(INDEX_SETTINGS))


def get_allowed_statuses(types: Iterable[str]) -> List[str]:
    """
    Statuses whose items belong in the index for the given type set.

    Attachments never leave the ``inherit`` status, so it is allowed as soon
    as attachments are indexable.
    """
    statuses = ["publish"]
    if "attachment" in set(types):
        statuses.append("inherit")
    return statuses


# ---------------------------------------------------------------------
# Size Accounting
# ---------------------------------------------------------------------

def encoded_size(value: Any) -> int:
    """UTF-8 size of the compact JSON encoding the backend receives."""
    return len(json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


def text_size(text: str) -> int:
    """Encoded size of a string value, without its surrounding quotes."""
    return encoded_size(text) - 2


# ---------------------------------------------------------------------
# Content Cleaning
# ---------------------------------------------------------------------

def clean_content(html: str) -> str:
    """
    Reduce rendered HTML to indexable plain text.

    Scripts, styles and comments are dropped, block elements become line
    breaks, entities are decoded, runs of line breaks collapse to one and
    other whitespace runs to a single space.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    for node in soup.find_all(string=lambda s: isinstance(s, (Comment, CData))):
        node.extract()
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_after("\n")

    text = soup.get_text()
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\xa0", " ")
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r"\s*\n\s*", "\n", text)
    return text.strip()


# ---------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------

def split_content(content: str, max_size: int) -> List[str]:
    """
    Split text into pieces of at most ``max_size`` encoded bytes.

    Cuts fall after the last space (or line break) that fits; a single word
    longer than ``max_size`` is hard-cut. ``"".join(pieces) == content``.
    """
    if max_size < _MAX_CHAR_BYTES:
        raise ValueError(f"max_size must be at least {_MAX_CHAR_BYTES} bytes")
    if text_size(content) <= max_size:
        return [content]

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=max_size,
        chunk_overlap=0,
        length_function=text_size,
        separators=[" ", "\n", ""],
        keep_separator="end",
        strip_whitespace=False,
    )
    return splitter.split_text(content)


def join_chunks(chunks: Sequence[str]) -> str:
    """Reassemble chunk contents (in chunk order) into the cleaned text."""
    parts = []
    for i, chunk in enumerate(chunks):
        if i > 0 and chunk.startswith(CONTINUATION_MARKER):
            chunk = chunk[len(CONTINUATION_MARKER):]
        parts.append(chunk)
    return "".join(parts)


# ---------------------------------------------------------------------
# Record Model
# ---------------------------------------------------------------------

class IndexRecord(BaseModel):
    """
    Wire shape of one index record.

    Used to validate records received from other sites before they are
    written to the shared index.
    """

    objectID: str = Field(..., min_length=1)
    site_post_id: str = Field(..., min_length=1)
    chunk_index: int = Field(..., ge=0)
    total_chunks: int = Field(..., ge=1)
    content: str = ""
    post_id: int = Field(..., ge=0)
    post_type: str = Field(..., min_length=1)
    post_title: str = ""
    post_name: str = ""
    post_excerpt: str = ""
    post_date_gmt: int = 0
    post_modified_gmt: int = 0
    permalink: str = ""
    is_sticky: int = 0
    site_key: str = Field(..., min_length=1)
    site_url: str = Field(..., min_length=1)
    site_name: str = ""
    thumbnail: Dict[str, Any] = Field(default_factory=dict)
    post_author_data: Optional[Dict[str, Any]] = None
    taxonomies: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------
# Record Builder
# ---------------------------------------------------------------------

class RecordBuilder:
    """
    Builds index records for the items of one site.

    Parameters
    ----------
    scope : ScopeKey
        The site the items belong to.
    site_name : str
        Human-readable site name stored on every record.
    record_size_limit : int
        Maximum encoded size of one record, in bytes.
    """

    def __init__(
        self,
        scope: ScopeKey,
        site_name: str = "",
        record_size_limit: int = DEFAULT_RECORD_SIZE_LIMIT,
    ) -> None:
        self.scope = scope
        self.site_name = site_name
        self.record_size_limit = record_size_limit

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def base_record(self, item: ContentItem) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "site_post_id": self.scope.document_id(item.id),
            "is_sticky": int(item.is_sticky),
            "permalink": item.permalink,
            "post_date_gmt": int(item.date_gmt.timestamp()) if item.date_gmt else 0,
            "post_excerpt": item.excerpt,
            "post_id": item.id,
            "post_modified_gmt": int(item.modified_gmt.timestamp()) if item.modified_gmt else 0,
            "post_name": item.name,
            "post_title": item.title,
            "post_type": item.type,
            "site_key": self.scope.key,
            "site_name": self.site_name,
            "site_url": self.scope.url,
            "thumbnail": item.thumbnail.model_dump() if item.thumbnail else {},
        }

        if item.author is not None:
            author = item.author
            record["post_author_data"] = {
                "author_display_name": author.display_name,
                "author_first_name": author.first_name,
                "author_id": author.author_id,
                "author_last_name": author.last_name,
                "author_login": author.login,
                "author_posts_url": author.posts_url,
                "author_avatar": author.avatar,
            }

        record["taxonomies"] = {
            taxonomy: [
                {
                    "count": term.count,
                    "description": term.description,
                    "name": term.name,
                    "parent": term.parent,
                    "slug": term.slug,
                    "term_id": term.term_id,
                    "term_link": term.term_link,
                }
                for term in terms
            ]
            for taxonomy, terms in item.terms.items()
            if terms
        }
        return record

    def content_budget(self, base: Dict[str, Any]) -> int:
        """Bytes left for ``content`` once the base fields are encoded."""
        skeleton = dict(
            base,
            objectID=f"{base['site_post_id']}_{_WORST_CASE_CHUNK}",
            chunk_index=_WORST_CASE_CHUNK,
            total_chunks=_WORST_CASE_CHUNK,
            content="",
        )
        return self.record_size_limit - encoded_size(skeleton)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, item: ContentItem) -> List[Dict[str, Any]]:
        """
        Build every record of an item.

        Raises
        ------
        RecordOverBudget
            If the base fields alone fill the record, leaving no room for
            content.
        """
        base = self.base_record(item)
        budget = self.content_budget(base)
        content = clean_content(item.content)

        if budget <= 0:
            raise RecordOverBudget(
                f"Item {item.id} metadata exceeds the {self.record_size_limit} byte record limit",
                details={"content_id": item.id, "overflow": -budget},
            )

        if text_size(content) <= budget:
            pieces = [content]
        else:
            piece_budget = budget - text_size(CONTINUATION_MARKER)
            if piece_budget < _MAX_CHAR_BYTES:
                raise RecordOverBudget(
                    f"Item {item.id} leaves no room to split its content",
                    details={"content_id": item.id, "budget": budget},
                )
            pieces = split_content(content, piece_budget)

        total = len(pieces)
        records = []
        for index, piece in enumerate(pieces):
            record = dict(base)
            record["objectID"] = f"{base['site_post_id']}_{index}"
            record["chunk_index"] = index
            record["total_chunks"] = total
            record["content"] = piece if index == 0 else CONTINUATION_MARKER + piece
            records.append(record)
        return records

    def to_records(self, item: ContentItem) -> List[Dict[str, Any]]:
        """
        Build an item's records, logging and skipping items over budget.
        """
        try:
            return self.build(item)
        except RecordOverBudget as exc:
            logger.error("Skipping item %s on %s: %s", item.id, self.scope.url, exc.message)
            return []
