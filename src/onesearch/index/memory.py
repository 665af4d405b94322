"""
In-Memory Search Backend

A process-local stand-in for the hosted index, used by the test-suite and
for local development (``ONESEARCH_SEARCH_BACKEND=memory``).

Key Properties
--------------
- Records keyed by ``objectID`` (upserts overwrite)
- Filter AST evaluated directly, no string parsing
- Prefix matching of every query word against title and content
- Custom ranking, distinct and zero-based pagination like the hosted index
- Concurrency-safe (thread locking)
"""

from __future__ import annotations

import copy
import math
import re
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .backend import WRITE_ACL, SearchBackend
from .filters import Filter, matches

_WORD = re.compile(r"\w+", re.UNICODE)


class MemoryBackend(SearchBackend):

    def __init__(self, index_name: str = "memory", acl: Iterable[str] = WRITE_ACL) -> None:
        self.index_name = index_name
        self.settings: Dict[str, Any] = {}
        self.settings_applied = 0
        self._acl = set(acl)
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    @property
    def records(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(r) for _, r in sorted(self._records.items())]

    def count(self, expr: Optional[Filter] = None) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if matches(expr, r))

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _query_words(query: str) -> List[str]:
        return [w.lower() for w in _WORD.findall(query or "")]

    @staticmethod
    def _matches_query(record: Dict[str, Any], words: Sequence[str]) -> bool:
        if not words:
            return True
        text = f"{record.get('post_title', '')} {record.get('content', '')}".lower()
        tokens = _WORD.findall(text)
        return all(any(t.startswith(w) for t in tokens) for w in words)

    @staticmethod
    def _rank_key(record: Dict[str, Any]):
        return (
            -int(record.get("is_sticky") or 0),
            -int(record.get("post_date_gmt") or 0),
            int(record.get("chunk_index") or 0),
            str(record.get("objectID", "")),
        )

    @staticmethod
    def _highlight(value: Any, words: Sequence[str], pre: str, post: str) -> Dict[str, Any]:
        text = str(value or "")
        if not words:
            return {"value": text, "matchLevel": "none", "matchedWords": []}
        pattern = re.compile(
            r"\b(" + "|".join(re.escape(w) for w in words) + r")",
            re.IGNORECASE,
        )
        found = sorted({m.group(1).lower() for m in pattern.finditer(text)})
        highlighted = pattern.sub(lambda m: f"{pre}{m.group(1)}{post}", text)
        level = "full" if len(found) == len(words) else ("partial" if found else "none")
        return {"value": highlighted, "matchLevel": level, "matchedWords": found}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def apply_settings(self, settings: Dict[str, Any]) -> None:
        with self._lock:
            self.settings = copy.deepcopy(settings)
            self.settings_applied += 1

    async def delete_by_filter(self, expr: Filter) -> None:
        with self._lock:
            doomed = [oid for oid, r in self._records.items() if matches(expr, r)]
            for oid in doomed:
                del self._records[oid]

    async def upsert_batch(self, records: Sequence[Dict[str, Any]]) -> None:
        with self._lock:
            for record in records:
                self._records[str(record["objectID"])] = copy.deepcopy(record)

    async def search(self, query: str, params: Dict[str, Any]) -> Dict[str, Any]:
        words = self._query_words(query)
        expr = params.get("filters")

        with self._lock:
            candidates = [
                copy.deepcopy(r)
                for r in self._records.values()
                if matches(expr, r) and self._matches_query(r, words)
            ]
            distinct = params.get("distinct", self.settings.get("distinct", False))
            distinct_attr = self.settings.get("attributeForDistinct", "site_post_id")

        candidates.sort(key=self._rank_key)

        if distinct:
            seen = set()
            unique = []
            for record in candidates:
                key = record.get(distinct_attr)
                if key in seen:
                    continue
                seen.add(key)
                unique.append(record)
            candidates = unique

        total = len(candidates)
        per_page = max(1, int(params.get("hitsPerPage", 20)))
        page = max(0, int(params.get("page", 0)))
        window = candidates[page * per_page:(page + 1) * per_page]

        pre = params.get("highlightPreTag", "<em>")
        post = params.get("highlightPostTag", "</em>")
        attributes = params.get("attributesToHighlight", ["post_title", "content"])
        ranking = bool(params.get("getRankingInfo"))

        hits = []
        for position, record in enumerate(window):
            record["_highlightResult"] = {
                attr: self._highlight(record.get(attr), words, pre, post)
                for attr in attributes
                if attr in record
            }
            if ranking:
                record["_rankingInfo"] = {
                    "nbTypos": 0,
                    "words": len(words),
                    "proximityDistance": 0,
                    "geoDistance": 0,
                    "userScore": total - (page * per_page + position),
                }
            hits.append(record)

        return {
            "hits": hits,
            "nbHits": total,
            "page": page,
            "nbPages": math.ceil(total / per_page) if total else 0,
            "hitsPerPage": per_page,
        }

    async def delete_index(self) -> None:
        with self._lock:
            self._records.clear()
            self.settings = {}

    async def validate_key(self, required_acl: Iterable[str] = WRITE_ACL) -> bool:
        return set(required_acl).issubset(self._acl)
