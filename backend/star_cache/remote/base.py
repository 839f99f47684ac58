"""Remote source port."""

from __future__ import annotations

from typing import Protocol

from star_cache.models.entities import Starred, User


class RemoteSource(Protocol):
    """What the sync engine needs from the remote API."""

    def current_user(self) -> User:
        """Profile of the token owner; may raise QuotaExceededError or TransportError."""

    def list_starred_all(self) -> list[Starred]:
        """Every starred repository; may raise QuotaExceededError or TransportError."""

    def fetch_readme(self, owner: str, repo: str) -> str:
        """README text of one repository; may raise TransportError."""


__all__ = ["RemoteSource"]
