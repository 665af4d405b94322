"""
API Models

Request and response bodies of the ``/onesearch/v1`` endpoints. Field names
follow the cross-site wire format so that peers written against the same
protocol can talk to this service.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------

class OperationResponse(BaseModel):
    """
    Standard mutation result.
    """
    success: bool
    message: Optional[str] = None
    results: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


class HealthResponse(BaseModel):
    success: bool = True
    site_url: str
    site_type: str
    caller: Optional[str] = None


# ---------------------------------------------------------------------
# Content changes
# ---------------------------------------------------------------------

class ContentChangeRequest(BaseModel):
    """
    A lifecycle transition reported by the local content store.
    """
    post_id: int = Field(..., ge=1)
    post_type: str = Field(..., min_length=1)
    old_status: str = ""
    post_status: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class ReindexPostRequest(BaseModel):
    """
    A brand site's change, forwarded to the governing site together with
    the records the brand built for it.
    """
    site_url: str = Field(..., min_length=1)
    post_id: int = Field(..., ge=1)
    post_type: str = Field(..., min_length=1)
    old_status: str = ""
    post_status: str = Field(..., min_length=1)
    records: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------
# Governing configuration
# ---------------------------------------------------------------------

class EntitiesRequest(BaseModel):
    entities: Dict[str, List[str]] = Field(default_factory=dict)


class SearchSettingsRequest(BaseModel):
    # Keyed by site URL; each value is {"enabled", "searchable_scopes"}
    # or {"algolia_enabled", "searchable_sites"}
    settings: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class CredentialsRequest(BaseModel):
    app_id: str = Field(..., min_length=1)
    write_key: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class SharedSiteEntry(BaseModel):
    url: str = Field(..., min_length=1)
    name: str = ""
    api_key: str = Field(..., min_length=1)


class SharedSitesRequest(BaseModel):
    sites: List[SharedSiteEntry] = Field(default_factory=list)
