"""
Index Writer

Applies index settings, deletes stale records and writes record batches for
one site.

Full Re-index
-------------
1. Delete every record of the scope (a failure here aborts the run).
2. Stop when no content types are indexable.
3. Page through the content source lazily, ``batch_size`` items at a time,
   building and upserting each batch. A batch that fails, whether the page
   cannot be listed or the upsert is rejected, is logged, counted and
   skipped; the run continues with the next page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

from ..content.source import ContentSource
from ..core.errors import IndexUnavailable, OneSearchError, PartialFailure
from ..scope import ScopeKey
from .backend import SearchBackend
from .filters import Eq, Filter, any_of
from .records import RecordBuilder, get_allowed_statuses, get_index_settings

logger = logging.getLogger("onesearch.index.writer")

DEFAULT_BATCH_SIZE = 100
MAX_CONSECUTIVE_PAGE_FAILURES = 3


@dataclass
class IndexReport:
    """Outcome of a full re-index of one scope."""

    scope: str
    success: bool = True
    batches: int = 0
    written: int = 0
    failed_batches: int = 0
    skipped_items: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.success:
            return f"Indexed {self.written} records in {self.batches} batches."
        return (
            f"{self.failed_batches} of {self.batches} batches failed: "
            + "; ".join(self.errors)
        )

    def raise_for_failures(self) -> None:
        if not self.success:
            raise PartialFailure(self.message, {self.scope: {"status": "error", "message": self.message}})


class IndexWriter:
    """
    Writes one site's records into the shared index.

    Parameters
    ----------
    backend : SearchBackend
        Target index.
    builder : RecordBuilder
        Record builder of the site being indexed; its scope is the default
        scope of ``index_all``.
    source : Optional[ContentSource]
        Content to page through for full re-indexes.
    batch_size : int
        Items per content page (and per upsert batch).
    """

    def __init__(
        self,
        backend: SearchBackend,
        builder: RecordBuilder,
        source: Optional[ContentSource] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.backend = backend
        self.builder = builder
        self.source = source
        self.batch_size = batch_size
        self._settings_applied = False

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    async def apply_settings(self) -> None:
        if self._settings_applied:
            return
        await self.backend.apply_settings(get_index_settings())
        self._settings_applied = True

    async def delete_by_filter(self, expr: Filter) -> None:
        await self.backend.delete_by_filter(expr)

    async def write_batch(self, records: Sequence[Dict[str, Any]]) -> int:
        if not records:
            return 0
        await self.apply_settings()
        await self.backend.upsert_batch(records)
        return len(records)

    async def delete_scopes(self, scopes: Iterable[ScopeKey]) -> None:
        """Remove every record of the given sites."""
        expr = any_of("site_url", [ScopeKey.of(s).url for s in scopes])
        if expr is None:
            return
        await self.backend.delete_by_filter(expr)

    async def drop_index(self) -> None:
        await self.backend.delete_index()
        self._settings_applied = False

    # ------------------------------------------------------------------
    # Full re-index
    # ------------------------------------------------------------------

    async def _record_batches(
        self,
        types: Sequence[str],
    ) -> AsyncIterator[Tuple[List[Dict[str, Any]], int, Optional[OneSearchError]]]:
        """
        Yield ``(records, skipped_items, error)`` per content page.

        A page the source cannot list is yielded with its error and no
        records, and paging moves on. After ``MAX_CONSECUTIVE_PAGE_FAILURES``
        unreadable pages in a row the listing stops.
        """
        statuses = get_allowed_statuses(types)
        page = 1
        failures = 0
        while True:
            try:
                items = await self.source.list_by_type_and_status(types, statuses, page, self.batch_size)
            except OneSearchError as exc:
                failures += 1
                yield [], 0, exc
                if failures >= MAX_CONSECUTIVE_PAGE_FAILURES:
                    logger.error("Giving up on %s after %d unreadable pages", self.builder.scope.url, failures)
                    return
                page += 1
                continue

            failures = 0
            if not items:
                return

            records: List[Dict[str, Any]] = []
            skipped = 0
            for item in items:
                item_records = self.builder.to_records(item)
                if not item_records:
                    skipped += 1
                records.extend(item_records)

            yield records, skipped, None
            page += 1

    async def index_all(
        self,
        types: Sequence[str],
        scope: Optional[ScopeKey] = None,
    ) -> IndexReport:
        """
        Replace every record of ``scope`` with freshly built ones.

        Raises
        ------
        IndexUnavailable
            If the scope wipe fails; nothing is written in that case.
        """
        scope = ScopeKey.of(scope) if scope is not None else self.builder.scope
        if scope != self.builder.scope:
            raise ValueError(f"Writer builds records for {self.builder.scope.url}, not {scope.url}")

        report = IndexReport(scope=scope.url)

        await self.delete_by_filter(Eq("site_url", scope.url))

        types = list(dict.fromkeys(types))
        if not types:
            logger.info("No indexable types for %s; scope cleared", scope.url)
            return report

        if self.source is None:
            raise IndexUnavailable("No content source configured for re-indexing")

        async for records, skipped, error in self._record_batches(types):
            report.batches += 1
            report.skipped_items += skipped
            if error is None:
                try:
                    report.written += await self.write_batch(records)
                except OneSearchError as exc:
                    error = exc

            if error is not None:
                report.failed_batches += 1
                report.success = False
                report.errors.append(error.message)
                logger.error(
                    "Batch %d for %s failed (%s); continuing",
                    report.batches,
                    scope.url,
                    error.message,
                )

        logger.info(
            "Re-indexed %s: %d records, %d batches, %d failed, %d items skipped",
            scope.url,
            report.written,
            report.batches,
            report.failed_batches,
            report.skipped_items,
        )
        return report
