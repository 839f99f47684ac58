"""Per-process session tying the store, index, remote and engines together."""

from __future__ import annotations

import threading
from typing import Any

from pydantic import ValidationError

from star_cache.core.config import Settings
from star_cache.core.errors import InvalidInputError, StoreCorruptionError
from star_cache.core.logging import get_logger
from star_cache.db.store import CacheStore, clear_all, starred_partition
from star_cache.remote.base import RemoteSource
from star_cache.remote.github import GitHubClient
from star_cache.retrieval.index import FullTextIndex
from star_cache.retrieval.search import QueryService, SearchResult, lookup
from star_cache.sync.freshness import FreshnessController
from star_cache.sync.pool import BoundedPool
from star_cache.sync.reconcile import Reconciler, SyncReport

logger = get_logger(__name__)


class StarCacheSession:
    """Everything one caller needs; passed explicitly instead of module globals."""

    def __init__(
        self,
        settings: Settings,
        store: CacheStore,
        remote: RemoteSource,
        index: FullTextIndex | None = None,
    ) -> None:
        token = settings.require_token()
        self.settings = settings
        self.store = store
        self.remote = remote
        self.index = index or FullTextIndex()
        self.partition = starred_partition(token)
        self.freshness = FreshnessController(
            store,
            remote,
            token,
            window_seconds=settings.freshness_window,
        )
        self.reconciler = Reconciler(
            store=store,
            index=self.index,
            remote=remote,
            freshness=self.freshness,
            partition=self.partition,
            pool=BoundedPool(settings.parallelism, name="readme"),
        )
        self.query_service = QueryService(
            store,
            self.index,
            self.partition,
            min_score=settings.min_score,
            max_hits=settings.max_hits,
        )
        self.last_results: list[SearchResult] = []
        self.last_report: SyncReport | None = None
        # One SQLite connection is shared by every caller of this session.
        self._lock = threading.RLock()

    @classmethod
    def open(cls, settings: Settings, remote: RemoteSource | None = None) -> "StarCacheSession":
        settings.require_token()
        if remote is None:
            remote = GitHubClient.from_settings(settings)
        return cls(settings, open_store(settings), remote)

    @property
    def min_score(self) -> float:
        return self.query_service.min_score

    @min_score.setter
    def min_score(self, value: float) -> None:
        with self._lock:
            try:
                self.settings.min_score = value
            except ValidationError as exc:
                raise InvalidInputError(f"Invalid minimum score {value!r}") from exc
            self.query_service.min_score = self.settings.min_score

    def create_index(self) -> SyncReport:
        with self._lock:
            self.last_report = self.reconciler.create_index()
            return self.last_report

    def load_cache(self) -> int:
        """Fill the index from the store without contacting the remote."""
        with self._lock:
            self.reconciler.rehydrate()
            return self.index.count()

    def search(self, text: str, min_score: float | None = None, size: int | None = None) -> list[SearchResult]:
        with self._lock:
            self.last_results = self.query_service.search(text, min_score=min_score, size=size)
            return list(self.last_results)

    def results(self) -> list[SearchResult]:
        with self._lock:
            return list(self.last_results)

    def lookup(self, ref: str) -> tuple[int, SearchResult] | None:
        """Resolve ``ref`` against the last results as (1-based number, result)."""
        with self._lock:
            result = lookup(self.last_results, ref)
            if result is None:
                return None
            return self.last_results.index(result) + 1, result

    def stats(self) -> dict[str, Any]:
        with self._lock:
            user = self.freshness.load_cached()
            return {
                "documents": self.index.count(),
                "stored": self.store.count(self.partition),
                "user": user.owner if user else None,
                "user_cached_at": user.cached_at.isoformat() if user and user.cached_at else None,
                "min_score": self.min_score,
                "db_path": str(self.store.path),
            }

    def clear(self) -> bool:
        """Drop the whole cache; the session is unusable afterwards."""
        with self._lock:
            self.store.close()
            self.index.clear()
            self.last_results = []
            return clear_all(self.store.path)

    def close(self) -> None:
        with self._lock:
            self.store.close()

    def __enter__(self) -> "StarCacheSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_store(settings: Settings) -> CacheStore:
    """Open the store, deleting it when it cannot be read."""
    try:
        return CacheStore.open(settings.db_path, lock_timeout=settings.store_lock_timeout)
    except StoreCorruptionError as exc:
        clear_all(settings.db_path)
        logger.warning("Deleted unreadable store %s: %s", settings.db_path, exc)
        raise StoreCorruptionError(
            f"Store {settings.db_path} was unreadable and has been deleted; run again"
        ) from exc


__all__ = ["StarCacheSession", "open_store"]
