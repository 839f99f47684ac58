"""Test fixtures for Star Cache."""

from __future__ import annotations

import base64
import dataclasses
import json
import os
import sys
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import requests

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from star_cache.core.config import Settings, get_settings  # noqa: E402
from star_cache.core.errors import TransportError  # noqa: E402
from star_cache.db.store import CacheStore  # noqa: E402
from star_cache.models.entities import Starred, User  # noqa: E402
from star_cache.session import StarCacheSession  # noqa: E402
from star_cache.utils.time import utc_now  # noqa: E402

TOKEN = "test-token"
T1 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2024, 2, 1, 12, 0, 0, tzinfo=timezone.utc)
API = "https://api.example.test"


def make_starred(
    full_name: str,
    pushed_at: datetime | None = T1,
    description: str = "",
    topics: tuple[str, ...] = (),
) -> Starred:
    owner, repo = full_name.split("/", 1)
    return Starred(
        owner=owner,
        repo=repo,
        full_name=full_name,
        url=f"https://github.com/{full_name}",
        description=description,
        topics=list(topics),
        stargazers_count=10,
        pushed_at=pushed_at,
    )


class FakeRemote:
    """In-memory stand-in for the GitHub client."""

    def __init__(self, items: list[Starred] | None = None) -> None:
        self.items: dict[str, Starred] = {item.full_name: item for item in items or []}
        self.readmes: dict[str, str | Exception] = {}
        self.user_error: Exception | None = None
        self.list_error: Exception | None = None
        self.calls: Counter[str] = Counter()
        self.fetched: list[str] = []
        self._lock = threading.Lock()

    def set_items(self, items: list[Starred]) -> None:
        self.items = {item.full_name: item for item in items}

    def current_user(self) -> User:
        self.calls["user"] += 1
        if self.user_error is not None:
            raise self.user_error
        return User(owner="octocat", token=TOKEN, bio="hi", cached_at=utc_now())

    def list_starred_all(self) -> list[Starred]:
        self.calls["list"] += 1
        if self.list_error is not None:
            raise self.list_error
        return [dataclasses.replace(item, topics=list(item.topics)) for item in self.items.values()]

    def fetch_readme(self, owner: str, repo: str) -> str:
        full_name = f"{owner}/{repo}"
        with self._lock:
            self.calls["readme"] += 1
            self.fetched.append(full_name)
        value = self.readmes.get(full_name, f"README of {full_name}")
        if isinstance(value, Exception):
            raise value
        return value


def raw_response(status: int, body: bytes, headers: dict[str, str] | None = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp.headers.update(headers or {})
    resp.url = API
    return resp


def json_response(status: int, payload, headers: dict[str, str] | None = None) -> requests.Response:
    return raw_response(status, json.dumps(payload).encode("utf-8"), headers)


def readme_payload(text: str) -> dict[str, str]:
    return {"content": base64.b64encode(text.encode("utf-8")).decode("ascii"), "encoding": "base64"}


def star_payload(name: str, pushed: str = "2024-01-01T00:00:00Z") -> dict:
    owner, repo = name.split("/")
    return {
        "starred_at": "2023-06-01T10:00:00Z",
        "repo": {
            "name": repo,
            "full_name": name,
            "owner": {"login": owner},
            "html_url": f"https://github.com/{name}",
            "description": None,
            "topics": ["cli"],
            "watchers_count": 3,
            "stargazers_count": 5,
            "forks_count": 1,
            "created_at": "2020-01-01T00:00:00Z",
            "updated_at": "2024-01-02T00:00:00Z",
            "pushed_at": pushed,
        },
    }


class ScriptedSession(requests.Session):
    """requests session answering from a route table keyed by path (and page)."""

    def __init__(self, routes: dict[str, requests.Response | Exception]) -> None:
        super().__init__()
        self.routes = routes
        self.requests: list[tuple[str, dict | None]] = []

    def get(self, url, params=None, headers=None, timeout=None, **kwargs):
        self.requests.append((url, params))
        key = url[len(API):]
        if params and "page" in params:
            key = f"{key}?page={params['page']}"
        route = self.routes[key]
        if isinstance(route, Exception):
            raise route
        return route


@pytest.fixture(autouse=True)
def reset_state(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached settings and environment between tests."""
    for key in list(os.environ):
        if key.startswith("STC_") or key == "GITHUB_TOKEN":
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        github_token=TOKEN,
        db_path=tmp_path / "cache.db",
        parallelism=4,
        store_lock_timeout=0.1,
    )


@pytest.fixture
def store(settings: Settings) -> CacheStore:
    cache_store = CacheStore.open(settings.db_path, lock_timeout=settings.store_lock_timeout)
    yield cache_store
    cache_store.close()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote(
        [
            make_starred("psf/requests", description="HTTP for Humans", topics=("http", "python")),
            make_starred("tensorflow/tensorflow", description="Machine learning framework", topics=("ml",)),
            make_starred("pallets/flask", description="The Python micro framework", topics=("web", "python")),
        ]
    )


@pytest.fixture
def session(settings: Settings, store: CacheStore, remote: FakeRemote) -> StarCacheSession:
    return StarCacheSession(settings, store, remote)


def age_cached_user(session: StarCacheSession, hours: float = 2.0) -> None:
    """Push the cached profile outside the freshness window."""
    user = session.freshness.load_cached()
    assert user is not None
    user.cached_at = utc_now() - timedelta(hours=hours)
    session.freshness.save(user)
