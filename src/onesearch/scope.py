"""
Site Scopes

Every site taking part in the federation is identified by a *scope key*
derived from its URL.

Architecture
------------
- ``ScopeKey.url`` is the canonical URL: trimmed, lower-cased, exactly one
  trailing slash. Records carry it in ``site_url`` and filters match on it.
- ``ScopeKey.key`` is the record-safe form used to build record identifiers
  (``<key>_<content id>_<chunk>``). It keeps the ``[a-z0-9-]`` characters of
  the URL for readability and appends a digest of the full URL, so two sites
  whose URLs differ only in punctuation never share a key.
- Normalization is idempotent, so ``ScopeKey.of(scope.url) == scope``.
"""

from __future__ import annotations

import hashlib
import re
from typing import Union
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core.errors import InvalidScopeError


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

# Underscores separate the parts of a record id, so keys never contain one.
RECORD_KEY_STRIP = re.compile(r"[^a-z0-9\-]")
KEY_DIGEST_LENGTH = 12


# ---------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------

def normalize_url(url: str) -> str:
    """
    Return the canonical form of a site URL.

    Raises
    ------
    InvalidScopeError
        If the value is empty or is not an absolute http(s) URL.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidScopeError("site URL is required")

    value = url.strip().lower()
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidScopeError(f"Invalid site URL '{url}': expected an absolute http(s) URL")

    return value.rstrip("/") + "/"


# ---------------------------------------------------------------------
# Scope Key Model
# ---------------------------------------------------------------------

class ScopeKey(BaseModel):
    """
    Normalized identifier of one site in the federation.

    Instances are immutable and hashable, so they can be used in sets and as
    dictionary keys.
    """

    url: str = Field(..., min_length=1, description="Canonical site URL.")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("url", mode="before")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_url(v)

    @classmethod
    def of(cls, value: Union[str, "ScopeKey"]) -> "ScopeKey":
        """
        Build a scope from a raw URL, passing existing scopes through.

        Invalid URLs raise ``InvalidScopeError`` rather than a pydantic
        ``ValidationError``.
        """
        if isinstance(value, ScopeKey):
            return value
        return cls(url=normalize_url(value))

    @property
    def key(self) -> str:
        digest = hashlib.sha256(self.url.encode("utf-8")).hexdigest()[:KEY_DIGEST_LENGTH]
        readable = RECORD_KEY_STRIP.sub("", self.url)
        return f"{readable}-{digest}"

    @property
    def host(self) -> str:
        return urlsplit(self.url).netloc

    def document_id(self, content_id: int) -> str:
        return f"{self.key}_{content_id}"

    def __str__(self) -> str:
        return self.url

