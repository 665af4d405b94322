"""
Content Models

Read-only view of the items a site publishes. The indexing core never
mutates these; it only turns them into index records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Term(BaseModel):
    term_id: int
    name: str
    slug: str = ""
    taxonomy: str = ""
    description: str = ""
    parent: int = 0
    count: int = 0
    term_link: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


class Author(BaseModel):
    author_id: int
    display_name: str = ""
    first_name: str = ""
    last_name: str = ""
    login: str = ""
    posts_url: str = ""
    avatar: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


class Thumbnail(BaseModel):
    url: str
    width: int = 0
    height: int = 0

    model_config = ConfigDict(frozen=True, extra="forbid")


class ContentItem(BaseModel):
    """
    One publishable content item (post, page, attachment, custom type).
    """

    id: int = Field(..., ge=0)
    type: str = Field(..., min_length=1)
    status: str = "publish"
    title: str = ""
    excerpt: str = ""
    content: str = Field("", description="Raw (HTML) body.")
    name: str = Field("", description="URL slug.")
    terms: Dict[str, List[Term]] = Field(default_factory=dict)
    author: Optional[Author] = None
    thumbnail: Optional[Thumbnail] = None
    date_gmt: Optional[datetime] = None
    modified_gmt: Optional[datetime] = None
    permalink: str = ""
    is_sticky: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")
