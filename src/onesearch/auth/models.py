"""
Authentication Models

Strongly-typed caller identities produced by the authentication
dependencies.
"""

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class AdminContext(BaseModel):
    """
    Site administrator authenticated with a bearer JWT.
    """

    username: str = Field(
        ...,
        min_length=1,
        description="Administrator the token was issued to.",
    )

    scopes: List[str] = Field(
        default_factory=list,
        description="Capabilities granted by the token.",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",  # Prevents claim injection via unexpected fields
    )


class SiteContext(BaseModel):
    """
    Caller of a cross-site endpoint.

    ``site_url`` is the peer site that presented the shared secret, or this
    site itself when an administrator made the call.
    """

    site_url: str = Field(..., min_length=1)
    via: Literal["token", "admin"]

    model_config = ConfigDict(frozen=True, extra="forbid")
