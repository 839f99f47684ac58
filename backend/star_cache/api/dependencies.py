"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request

from star_cache.session import StarCacheSession


def get_session(request: Request) -> StarCacheSession:
    session: StarCacheSession | None = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Cache session is not open")
    return session


__all__ = ["get_session"]
