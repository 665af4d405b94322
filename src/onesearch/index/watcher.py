"""
Change Watcher

Keeps the index in step with content lifecycle transitions. The content
store reports every transition as an explicit ``ContentChangeEvent``.

Behavior by role
----------------
- Governing site: delete the document's records, then rebuild and write
  them when the new status is indexable.
- Brand site: build the records locally and forward them to the governing
  site's ``reindex-post`` endpoint, which applies the governing behavior on
  the brand's behalf.

Types that are not indexable for the scope are skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from ..content.models import ContentItem
from ..core.errors import InvalidScopeError, OneSearchError
from ..scope import ScopeKey
from .filters import Eq, all_of
from .records import IndexRecord, RecordBuilder, encoded_size, get_allowed_statuses
from .writer import IndexWriter

logger = logging.getLogger("onesearch.index.watcher")

EntityLookup = Callable[[ScopeKey], Awaitable[Sequence[str]]]


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

@dataclass
class ContentChangeEvent:
    """One lifecycle transition of a content item."""

    scope: ScopeKey
    content_id: int
    content_type: str
    old_status: str
    new_status: str
    # Current item, when it still exists
    item: Optional[ContentItem] = None
    # Records built by a brand site and forwarded to the governing site
    records: Optional[List[Dict[str, Any]]] = None


class ChangeResult(BaseModel):
    ok: bool
    action: Literal["skip", "deleted", "upserted", "forwarded", "error"]
    count: Optional[int] = None
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------

class ChangeWatcher:
    """
    Applies content change events for one site.

    Parameters
    ----------
    role : "governing" | "brand"
        Which behavior to apply.
    entities : EntityLookup
        Resolves the indexable content types of a scope.
    builder : RecordBuilder
        Builds records for this site's own items.
    writer : Optional[IndexWriter]
        Index access (governing role).
    governing : Optional[GoverningLink]
        Link to the governing site (brand role).
    """

    def __init__(
        self,
        role: Literal["governing", "brand"],
        entities: EntityLookup,
        builder: RecordBuilder,
        writer: Optional[IndexWriter] = None,
        governing: Any = None,
    ) -> None:
        if role == "governing" and writer is None:
            raise ValueError("The governing role needs an index writer")
        if role == "brand" and governing is None:
            raise ValueError("The brand role needs a link to the governing site")
        self.role = role
        self.builder = builder
        self._entities = entities
        self._writer = writer
        self._governing = governing

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _forwarded_records(self, event: ContentChangeEvent) -> List[Dict[str, Any]]:
        """Validate records received from a brand site for its own document."""
        document_id = event.scope.document_id(event.content_id)
        limit = self.builder.record_size_limit
        records = []
        for raw in event.records or []:
            try:
                record = IndexRecord.model_validate(raw).to_payload()
            except ValidationError as exc:
                raise InvalidScopeError(f"Malformed record for {document_id}: {exc.error_count()} errors") from exc

            if record["site_url"] != event.scope.url or record["site_post_id"] != document_id:
                raise InvalidScopeError(f"Record {record['objectID']} does not belong to {document_id}")

            if encoded_size(record) > limit:
                logger.error("Dropping oversized record %s (%d byte limit)", record["objectID"], limit)
                continue
            records.append(record)
        return records

    def _records_for(self, event: ContentChangeEvent) -> List[Dict[str, Any]]:
        if event.records is not None:
            return self._forwarded_records(event)
        if event.item is not None and event.scope == self.builder.scope:
            return self.builder.to_records(event.item)
        return []

    async def _is_indexable(self, event: ContentChangeEvent) -> bool:
        types = await self._entities(event.scope)
        return event.content_type in types

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle(self, event: ContentChangeEvent) -> ChangeResult:
        try:
            if not await self._is_indexable(event):
                return ChangeResult(ok=True, action="skip")
        except OneSearchError as exc:
            logger.error("Could not resolve indexable types for %s: %s", event.scope.url, exc.message)
            return ChangeResult(ok=False, action="error", message=exc.message)

        if self.role == "governing":
            return await self.apply(event)
        return await self.forward(event)

    async def apply(self, event: ContentChangeEvent) -> ChangeResult:
        """Delete the document's records and rebuild them when still indexable."""
        document_id = event.scope.document_id(event.content_id)
        indexable = event.new_status in get_allowed_statuses([event.content_type])

        try:
            records = self._records_for(event) if indexable else []
            await self._writer.delete_by_filter(
                all_of(Eq("site_url", event.scope.url), Eq("site_post_id", document_id))
            )
            if not indexable:
                return ChangeResult(ok=True, action="deleted")
            count = await self._writer.write_batch(records)
        except OneSearchError as exc:
            logger.error("Change %s -> %s for %s failed: %s", event.old_status, event.new_status, document_id, exc.message)
            return ChangeResult(ok=False, action="error", message=exc.message)

        return ChangeResult(ok=True, action="upserted", count=count)

    async def forward(self, event: ContentChangeEvent) -> ChangeResult:
        """Send the change and the locally built records to the governing site."""
        records: List[Dict[str, Any]] = []
        if event.item is not None and event.new_status in get_allowed_statuses([event.content_type]):
            records = self.builder.to_records(event.item)

        payload = {
            "site_url": event.scope.url,
            "post_id": event.content_id,
            "post_type": event.content_type,
            "old_status": event.old_status,
            "post_status": event.new_status,
            "records": records,
        }

        try:
            data = await self._governing.push_change(payload)
        except OneSearchError as exc:
            logger.error("Forwarding change for %s failed: %s", event.scope.document_id(event.content_id), exc.message)
            return ChangeResult(ok=False, action="error", message=exc.message)

        ok = bool(data.get("ok"))
        return ChangeResult(
            ok=ok,
            action="forwarded" if ok else "error",
            count=data.get("count"),
            message=data.get("message") or data.get("action"),
        )
