"""Internal dataclasses representing cached entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import orjson

from star_cache.core.errors import StoreCorruptionError
from star_cache.utils.time import epoch_seconds, parse_timestamp


@dataclass(slots=True)
class Starred:
    """A starred repository plus its fetched README."""

    owner: str
    repo: str
    full_name: str
    url: str = ""
    description: str = ""
    topics: list[str] = field(default_factory=list)
    watchers_count: int = 0
    stargazers_count: int = 0
    forks_count: int = 0
    starred_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None
    readme: str = ""
    cached_at: datetime | None = None
    error: str | None = None

    @property
    def pushed_epoch(self) -> int | None:
        """Change fingerprint: the pushed-at timestamp at second resolution."""
        return epoch_seconds(self.pushed_at)

    def to_document(self) -> dict[str, Any]:
        """Fields handed to the full-text index."""
        return {
            "full_name": self.full_name,
            "owner": self.owner,
            "repo": self.repo,
            "description": self.description,
            "topics": " ".join(self.topics),
            "readme": self.readme,
        }

    def to_bytes(self) -> bytes:
        payload = {
            "owner": self.owner,
            "repo": self.repo,
            "full_name": self.full_name,
            "url": self.url,
            "description": self.description,
            "topics": list(self.topics),
            "watchers_count": self.watchers_count,
            "stargazers_count": self.stargazers_count,
            "forks_count": self.forks_count,
            "starred_at": self.starred_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "pushed_at": self.pushed_at,
            "readme": self.readme,
            "cached_at": self.cached_at,
        }
        return orjson.dumps(payload)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Starred":
        try:
            raw = orjson.loads(data)
            return cls(
                owner=raw.get("owner") or "",
                repo=raw.get("repo") or "",
                full_name=raw["full_name"],
                url=raw.get("url") or "",
                description=raw.get("description") or "",
                topics=list(raw.get("topics") or []),
                watchers_count=int(raw.get("watchers_count") or 0),
                stargazers_count=int(raw.get("stargazers_count") or 0),
                forks_count=int(raw.get("forks_count") or 0),
                starred_at=parse_timestamp(raw.get("starred_at")),
                created_at=parse_timestamp(raw.get("created_at")),
                updated_at=parse_timestamp(raw.get("updated_at")),
                pushed_at=parse_timestamp(raw.get("pushed_at")),
                readme=raw.get("readme") or "",
                cached_at=parse_timestamp(raw.get("cached_at")),
            )
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise StoreCorruptionError(f"Unreadable starred record: {exc}") from exc


@dataclass(slots=True)
class User:
    """Cached profile of the account owning the token."""

    owner: str
    token: str
    avatar_url: str = ""
    url: str = ""
    bio: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    cached_at: datetime | None = None

    def to_bytes(self) -> bytes:
        return orjson.dumps(
            {
                "owner": self.owner,
                "avatar_url": self.avatar_url,
                "url": self.url,
                "bio": self.bio,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
                "token": self.token,
                "cached_at": self.cached_at,
            }
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "User":
        try:
            raw = orjson.loads(data)
            return cls(
                owner=raw["owner"],
                token=raw["token"],
                avatar_url=raw.get("avatar_url") or "",
                url=raw.get("url") or "",
                bio=raw.get("bio") or "",
                created_at=parse_timestamp(raw.get("created_at")),
                updated_at=parse_timestamp(raw.get("updated_at")),
                cached_at=parse_timestamp(raw.get("cached_at")),
            )
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise StoreCorruptionError(f"Unreadable user record: {exc}") from exc


__all__ = ["Starred", "User"]
