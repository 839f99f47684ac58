"""Reconciles the remote starred list with the persisted snapshot."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Mapping, Sequence

from star_cache.core.errors import QuotaExceededError, StoreCorruptionError, TransportError
from star_cache.core.logging import get_logger
from star_cache.core.metrics import FETCH_FAILURES, INDEX_SIZE, SYNC_ITEMS
from star_cache.db.store import CacheStore
from star_cache.models.entities import Starred
from star_cache.remote.base import RemoteSource
from star_cache.retrieval.index import FullTextIndex
from star_cache.sync.freshness import FreshnessController
from star_cache.sync.pool import BoundedPool

logger = get_logger(__name__)

MODE_CACHE = "cache"
MODE_RELOAD = "reload"
MODE_FALLBACK = "fallback"
MODE_RECOVERED = "recovered"


@dataclass(slots=True)
class ChangeSet:
    insert: list[Starred] = field(default_factory=list)
    update: list[Starred] = field(default_factory=list)
    delete: list[Starred] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.insert or self.update or self.delete)


@dataclass(slots=True)
class SyncReport:
    mode: str
    created: bool
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    documents: int = 0
    user: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def compute_changes(old: Mapping[str, Starred], new: Mapping[str, Starred]) -> ChangeSet:
    """Split two snapshots into insert, update and delete sets.

    ``pushed_at`` is the only fingerprint: edits that do not move it are
    not picked up.
    """
    changes = ChangeSet()
    for name in sorted(new):
        current = new[name]
        previous = old.get(name)
        if previous is None:
            changes.insert.append(current)
        elif previous.pushed_epoch != current.pushed_epoch:
            changes.update.append(current)
    changes.delete = [old[name] for name in sorted(old) if name not in new]
    return changes


class Reconciler:
    """Keeps one partition of the store and the in-memory index in step with the remote."""

    def __init__(
        self,
        store: CacheStore,
        index: FullTextIndex,
        remote: RemoteSource,
        freshness: FreshnessController,
        partition: str,
        pool: BoundedPool,
    ) -> None:
        self.store = store
        self.index = index
        self.remote = remote
        self.freshness = freshness
        self.partition = partition
        self.pool = pool
        self._snapshot: dict[str, Starred] = {}

    def create_index(self) -> SyncReport:
        """Make the index ready, refreshing from the remote when due."""
        self._snapshot = {}
        try:
            report = self._run()
        except StoreCorruptionError as exc:
            report = self._recover(exc)
        INDEX_SIZE.set(self.index.count())
        return report

    def rehydrate(self) -> dict[str, Starred]:
        """Rebuild the index from the store alone."""
        self.index.clear()
        snapshot = self.load_snapshot()
        self._snapshot = dict(snapshot)
        for starred in snapshot.values():
            self.index.upsert(starred.full_name, starred.to_document())
        INDEX_SIZE.set(self.index.count())
        return snapshot

    def load_snapshot(self) -> dict[str, Starred]:
        snapshot: dict[str, Starred] = {}
        for key, value in self.store.items(self.partition):
            try:
                starred = Starred.from_bytes(value)
            except StoreCorruptionError:
                logger.warning("Skipping unreadable cached item %s", key.decode("utf-8", errors="replace"))
                continue
            snapshot[starred.full_name] = starred
        return snapshot

    def _run(self) -> SyncReport:
        user, reload = self.freshness.resolve()
        created = self.store.create_partition(self.partition)

        self.index.clear()
        old: dict[str, Starred] = {}
        if not created:
            old = self.rehydrate()

        if not reload and not created:
            count = self.index.count()
            logger.info("[success][using cache] %d items", count)
            return SyncReport(mode=MODE_CACHE, created=False, documents=count, user=user.owner)

        try:
            fresh = self.remote.list_starred_all()
        except (QuotaExceededError, TransportError) as exc:
            logger.warning("Could not list starred repositories: %s", exc)
            if created:
                raise
            count = self.index.count()
            logger.warning("[fail][using cache] %d items", count)
            return SyncReport(
                mode=MODE_FALLBACK,
                created=False,
                documents=count,
                user=user.owner,
                error=str(exc),
            )

        new = {starred.full_name: starred for starred in fresh}
        changes = compute_changes(old, new)
        if created:
            logger.info("[refresh] all repositories")
        self._log_changes(changes)

        self.fetch_details([*changes.insert, *changes.update])
        skipped = self._write(changes.insert, "insert")
        skipped += self._write(changes.update, "update")
        self._delete(changes.delete)
        self.freshness.save(user)

        count = self.index.count()
        logger.info("[success][new reload] %d items", count)
        return SyncReport(
            mode=MODE_RELOAD,
            created=created,
            inserted=len(changes.insert) - sum(1 for item in changes.insert if item.error),
            updated=len(changes.update) - sum(1 for item in changes.update if item.error),
            deleted=len(changes.delete),
            skipped=skipped,
            documents=count,
            user=user.owner,
        )

    def fetch_details(self, items: Sequence[Starred]) -> None:
        """Fetch READMEs through the pool; failures stay on their items."""
        for item in items:
            item.error = None
        outcome = self.pool.run(list(items), self._fetch_detail, label=lambda item: item.full_name)
        # Any exception marks its item, so it is skipped on write.
        for failure in outcome.failures:
            failure.unit.error = str(failure.error) or type(failure.error).__name__
        if outcome.failed:
            FETCH_FAILURES.labels(stage="detail").inc(outcome.failed)

    def _fetch_detail(self, item: Starred) -> Starred:
        item.readme = self.remote.fetch_readme(item.owner, item.repo)
        return item

    def _write(self, items: Sequence[Starred], action: str) -> int:
        ready = [item for item in items if not item.error]
        for item in items:
            if item.error:
                logger.warning("[err][%s] README unavailable for %s: %s", action, item.full_name, item.error)
        if ready:
            with self.store.batch() as batch:
                for item in ready:
                    batch.put(self.partition, item.full_name, item.to_bytes())
            for item in ready:
                self.index.upsert(item.full_name, item.to_document())
                self._snapshot[item.full_name] = item
            SYNC_ITEMS.labels(action=action).inc(len(ready))
        skipped = len(items) - len(ready)
        if skipped:
            SYNC_ITEMS.labels(action="skipped").inc(skipped)
        return skipped

    def _delete(self, items: Sequence[Starred]) -> None:
        if not items:
            return
        with self.store.batch() as batch:
            for item in items:
                batch.delete(self.partition, item.full_name)
        for item in items:
            self.index.delete(item.full_name)
            self._snapshot.pop(item.full_name, None)
        SYNC_ITEMS.labels(action="delete").inc(len(items))

    def _recover(self, exc: StoreCorruptionError) -> SyncReport:
        """Recreate the store and write back whatever was already indexed."""
        snapshot = dict(self._snapshot)
        self.store.reset()
        if not snapshot:
            self.index.clear()
            raise exc
        logger.warning("Store was corrupt (%s); rebuilt it from %d indexed items", exc, len(snapshot))
        self.store.create_partition(self.partition)
        with self.store.batch() as batch:
            for starred in snapshot.values():
                batch.put(self.partition, starred.full_name, starred.to_bytes())
        return SyncReport(
            mode=MODE_RECOVERED,
            created=False,
            documents=self.index.count(),
            error=str(exc),
        )

    def _log_changes(self, changes: ChangeSet) -> None:
        for action, items in (("insert", changes.insert), ("update", changes.update), ("delete", changes.delete)):
            for item in items:
                logger.info(
                    "[%s] %s repository pushed_at %s",
                    action,
                    item.full_name,
                    item.pushed_at.isoformat() if item.pushed_at else "-",
                    extra={"ctx_action": action, "ctx_repo": item.full_name},
                )


__all__ = [
    "ChangeSet",
    "SyncReport",
    "Reconciler",
    "compute_changes",
    "MODE_CACHE",
    "MODE_RELOAD",
    "MODE_FALLBACK",
    "MODE_RECOVERED",
]
