"""Search orchestration."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from star_cache.core.errors import InvalidInputError, StoreCorruptionError
from star_cache.core.logging import get_logger
from star_cache.core.metrics import SEARCH_LATENCY
from star_cache.db.store import CacheStore
from star_cache.models.entities import Starred
from star_cache.utils.text import normalize

logger = get_logger(__name__)


class SearchIndex(Protocol):
    def match_query(self, text: str, max_hits: int) -> list[tuple[str, float]]: ...

    def wildcard_query(self, text: str, max_hits: int) -> list[tuple[str, float]]: ...


@dataclass(slots=True)
class SearchResult:
    starred: Starred
    score: float

    @property
    def full_name(self) -> str:
        return self.starred.full_name


def merge_hits(*hit_lists: Iterable[tuple[str, float]]) -> dict[str, float]:
    """Union hits by key, keeping the higher score."""
    merged: dict[str, float] = {}
    for hits in hit_lists:
        for key, score in hits:
            if key not in merged or score > merged[key]:
                merged[key] = score
    return merged


class QueryService:
    """Runs match and wildcard queries and joins hits back to stored items."""

    def __init__(
        self,
        store: CacheStore,
        index: SearchIndex,
        partition: str,
        min_score: float = 0.5,
        max_hits: int = 100,
    ) -> None:
        self.store = store
        self.index = index
        self.partition = partition
        self.min_score = min_score
        self.max_hits = max_hits

    def search(
        self,
        text: str,
        min_score: float | None = None,
        size: int | None = None,
    ) -> list[SearchResult]:
        query_text = normalize(text or "")
        if not query_text:
            return []
        if size is not None and size <= 0:
            raise InvalidInputError(f"size must be positive, got {size}")
        threshold = self.min_score if min_score is None else min_score
        limit = self.max_hits if size is None else size

        start_time = time.perf_counter()
        merged = merge_hits(
            self.index.match_query(query_text, limit),
            self.index.wildcard_query(query_text, limit),
        )
        kept = {key: score for key, score in merged.items() if score >= threshold}
        results = self._resolve(kept)
        results.sort(key=lambda result: (-result.score, result.full_name))
        SEARCH_LATENCY.observe(time.perf_counter() - start_time)
        logger.debug(
            "Search %r: %d merged hits, %d above %.2f, %d resolved",
            query_text,
            len(merged),
            len(kept),
            threshold,
            len(results),
        )
        return results

    def _resolve(self, scores: dict[str, float]) -> list[SearchResult]:
        if not scores:
            return []
        records = self.store.get_many(self.partition, list(scores))
        results: list[SearchResult] = []
        for key, score in scores.items():
            data = records.get(key.encode("utf-8"))
            if data is None:
                continue
            try:
                starred = Starred.from_bytes(data)
            except StoreCorruptionError as exc:
                logger.warning("Skipping unreadable record %s: %s", key, exc)
                continue
            results.append(SearchResult(starred=starred, score=score))
        return results


def lookup(results: Sequence[SearchResult], ref: str) -> SearchResult | None:
    """Find a result by 1-based position or by full name."""
    ref = ref.strip()
    if ref.isdigit():
        position = int(ref)
        if 1 <= position <= len(results):
            return results[position - 1]
        return None
    lowered = ref.lower()
    for result in results:
        if result.full_name.lower() == lowered:
            return result
    return None


__all__ = ["QueryService", "SearchResult", "merge_hits", "lookup"]
