"""Administrative routes for Star Cache."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from star_cache.api.dependencies import get_session
from star_cache.core.errors import InvalidInputError, QuotaExceededError, StarCacheError
from star_cache.core.metrics import REQUEST_COUNT, metrics_response
from star_cache.models.dto import ClearResponse, MinScoreRequest, StatsResponse, SyncResponse
from star_cache.session import StarCacheSession

router = APIRouter()


@router.post("/sync", response_model=SyncResponse, summary="Refresh the cache from GitHub when due")
def sync(session: StarCacheSession = Depends(get_session)) -> SyncResponse:
    try:
        report = session.create_index()
    except QuotaExceededError as exc:
        REQUEST_COUNT.labels(endpoint="sync", method="POST", status="429").inc()
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except StarCacheError as exc:
        REQUEST_COUNT.labels(endpoint="sync", method="POST", status="502").inc()
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    REQUEST_COUNT.labels(endpoint="sync", method="POST", status="200").inc()
    return SyncResponse(**report.to_dict())


@router.get("/stats", response_model=StatsResponse, summary="Cache statistics")
def stats(session: StarCacheSession = Depends(get_session)) -> StatsResponse:
    return StatsResponse(**session.stats())


@router.put("/settings/min-score", response_model=StatsResponse, summary="Adjust the search threshold")
def set_min_score(
    request: MinScoreRequest,
    session: StarCacheSession = Depends(get_session),
) -> StatsResponse:
    try:
        session.min_score = request.min_score
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return StatsResponse(**session.stats())


@router.delete("/cache", response_model=ClearResponse, summary="Delete all cached data")
def clear_cache(http_request: Request, session: StarCacheSession = Depends(get_session)) -> ClearResponse:
    removed = session.clear()
    http_request.app.state.session = None
    return ClearResponse(status="ok" if removed else "noop")


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
