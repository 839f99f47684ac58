"""Tests for the profile freshness check."""

from __future__ import annotations

from datetime import timedelta

from conftest import TOKEN, FakeRemote
from star_cache.core.errors import TransportError
from star_cache.db.store import USER_PARTITION
from star_cache.models.entities import User
from star_cache.sync.freshness import FreshnessController
from star_cache.utils.time import utc_now


def _controller(store, remote, now=None) -> FreshnessController:
    clock = (lambda: now) if now is not None else utc_now
    return FreshnessController(store, remote, TOKEN, window_seconds=3600, clock=clock)


def _save_user(store, cached_at) -> None:
    user = User(owner="cached", token=TOKEN, cached_at=cached_at)
    with store.batch() as batch:
        batch.put(USER_PARTITION, TOKEN, user.to_bytes())


def test_missing_profile_is_fetched_and_forces_reload(store) -> None:
    remote = FakeRemote()
    user, reload = _controller(store, remote).resolve()
    assert user.owner == "octocat"
    assert reload is True
    assert remote.calls["user"] == 1


def test_fresh_profile_is_used_without_network(store) -> None:
    remote = FakeRemote()
    now = utc_now()
    _save_user(store, now - timedelta(minutes=30))

    user, reload = _controller(store, remote, now=now).resolve()

    assert user.owner == "cached"
    assert reload is False
    assert remote.calls["user"] == 0


def test_stale_profile_is_refreshed(store) -> None:
    remote = FakeRemote()
    now = utc_now()
    _save_user(store, now - timedelta(hours=2))

    user, reload = _controller(store, remote, now=now).resolve()

    assert user.owner == "octocat"
    assert reload is True


def test_stale_profile_kept_when_refresh_fails(store) -> None:
    remote = FakeRemote()
    remote.user_error = TransportError("offline")
    now = utc_now()
    _save_user(store, now - timedelta(hours=2))

    user, reload = _controller(store, remote, now=now).resolve()

    assert user.owner == "cached"
    assert reload is False


def test_unreadable_profile_is_dropped(store) -> None:
    store.create_partition(USER_PARTITION)
    with store.batch() as batch:
        batch.put(USER_PARTITION, TOKEN, b"{not json")
    remote = FakeRemote()

    user, reload = _controller(store, remote).resolve()

    assert user.owner == "octocat"
    assert reload is True
