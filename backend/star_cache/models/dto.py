"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from star_cache.retrieval.search import SearchResult


class SearchRequest(BaseModel):
    query: str
    min_score: float | None = Field(default=None, ge=0)
    size: int | None = Field(default=None, ge=1, le=1000)


class StarredResult(BaseModel):
    num: int
    full_name: str
    score: float
    url: str
    description: str
    topics: list[str]
    stargazers_count: int
    pushed_at: datetime | None = None

    @classmethod
    def from_result(cls, result: SearchResult, num: int) -> "StarredResult":
        starred = result.starred
        return cls(
            num=num,
            full_name=starred.full_name,
            score=result.score,
            url=starred.url,
            description=starred.description,
            topics=list(starred.topics),
            stargazers_count=starred.stargazers_count,
            pushed_at=starred.pushed_at,
        )


class SearchResponse(BaseModel):
    query: str
    min_score: float
    results: list[StarredResult]


class SyncResponse(BaseModel):
    mode: Literal["cache", "reload", "fallback", "recovered"]
    created: bool
    inserted: int
    updated: int
    deleted: int
    skipped: int
    documents: int
    user: str | None = None
    error: str | None = None


class MinScoreRequest(BaseModel):
    min_score: float = Field(ge=0)


class StatsResponse(BaseModel):
    documents: int
    stored: int
    user: str | None = None
    user_cached_at: str | None = None
    min_score: float
    db_path: str


class ClearResponse(BaseModel):
    status: Literal["ok", "noop"]


__all__ = [
    "SearchRequest",
    "SearchResponse",
    "StarredResult",
    "SyncResponse",
    "MinScoreRequest",
    "StatsResponse",
    "ClearResponse",
]
