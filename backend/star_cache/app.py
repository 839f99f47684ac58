"""FastAPI application setup for Star Cache."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from star_cache.api.routes_admin import router as admin_router
from star_cache.api.routes_query import router as query_router
from star_cache.core.config import get_settings
from star_cache.core.logging import configure_logging
from star_cache.session import StarCacheSession


def create_app(session: StarCacheSession | None = None) -> FastAPI:
    """Build the app around ``session``, or open one from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.session is None:
            opened = StarCacheSession.open(get_settings())
            opened.create_index()
            app.state.session = opened
        try:
            yield
        finally:
            if app.state.session is not None:
                app.state.session.close()

    app = FastAPI(
        title="Star Cache",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.session = session
    app.include_router(query_router, prefix="", tags=["query"])
    app.include_router(admin_router, prefix="", tags=["admin"])

    @app.get("/health", tags=["admin"])
    def health() -> dict[str, bool]:
        """Simple liveness check."""
        return {"ok": True}

    return app


def build_default_app() -> FastAPI:
    """Entry point for ``uvicorn --factory star_cache.app:build_default_app``."""
    configure_logging()
    return create_app()


__all__ = ["create_app", "build_default_app"]
