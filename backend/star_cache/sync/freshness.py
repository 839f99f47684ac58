"""Decides whether the cached starred list needs a remote refresh."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from star_cache.core.errors import QuotaExceededError, StoreCorruptionError, TransportError
from star_cache.core.logging import get_logger
from star_cache.db.store import USER_PARTITION, CacheStore
from star_cache.models.entities import User
from star_cache.remote.base import RemoteSource
from star_cache.utils.time import utc_now

logger = get_logger(__name__)


class FreshnessController:
    """Loads the cached profile and refreshes it once it is older than the window."""

    def __init__(
        self,
        store: CacheStore,
        remote: RemoteSource,
        token: str,
        window_seconds: float = 3600.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.remote = remote
        self.token = token
        self.window = timedelta(seconds=window_seconds)
        self.clock = clock

    def load_cached(self) -> User | None:
        self.store.create_partition(USER_PARTITION)
        data = self.store.get(USER_PARTITION, self.token)
        if not data:
            return None
        try:
            return User.from_bytes(data)
        except StoreCorruptionError as exc:
            logger.warning("Cached user is unreadable, deleting it: %s", exc)
            with self.store.batch() as batch:
                batch.delete(USER_PARTITION, self.token)
            return None

    def is_stale(self, user: User) -> bool:
        if user.cached_at is None:
            return True
        return user.cached_at < self.clock() - self.window

    def resolve(self) -> tuple[User, bool]:
        """Return the profile to use and whether a full reload is due.

        A missing profile is fetched and always triggers a reload; failures
        there propagate. A stale profile is refreshed when possible; if the
        refresh fails the stale one is kept and the cache is used as is.
        """
        cached = self.load_cached()
        if cached is None:
            return self.remote.current_user(), True

        if not self.is_stale(cached):
            return cached, False

        try:
            refreshed = self.remote.current_user()
        except (QuotaExceededError, TransportError) as exc:
            logger.warning("Could not refresh user %s, using cached profile: %s", cached.owner, exc)
            return cached, False
        return refreshed, True

    def save(self, user: User) -> None:
        with self.store.batch() as batch:
            batch.put(USER_PARTITION, self.token, user.to_bytes())


__all__ = ["FreshnessController"]
