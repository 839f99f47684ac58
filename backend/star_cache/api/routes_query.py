"""Query API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from star_cache.api.dependencies import get_session
from star_cache.core.errors import IndexQueryError, InvalidInputError
from star_cache.core.metrics import REQUEST_COUNT
from star_cache.models.dto import SearchRequest, SearchResponse, StarredResult
from star_cache.session import StarCacheSession

router = APIRouter()


@router.post("/search", response_model=SearchResponse, summary="Search starred repositories")
def run_search(
    request: SearchRequest,
    session: StarCacheSession = Depends(get_session),
) -> SearchResponse:
    try:
        results = session.search(request.query, min_score=request.min_score, size=request.size)
    except InvalidInputError as exc:
        REQUEST_COUNT.labels(endpoint="search", method="POST", status="400").inc()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except IndexQueryError as exc:
        REQUEST_COUNT.labels(endpoint="search", method="POST", status="500").inc()
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    REQUEST_COUNT.labels(endpoint="search", method="POST", status="200").inc()
    threshold = session.min_score if request.min_score is None else request.min_score
    return SearchResponse(
        query=request.query,
        min_score=threshold,
        results=[StarredResult.from_result(result, num) for num, result in enumerate(results, start=1)],
    )


@router.get("/results", response_model=list[StarredResult], summary="Results of the last search")
def list_results(session: StarCacheSession = Depends(get_session)) -> list[StarredResult]:
    return [StarredResult.from_result(result, num) for num, result in enumerate(session.results(), start=1)]


@router.get("/results/{ref:path}", response_model=StarredResult, summary="One result by number or full name")
def get_result(ref: str, session: StarCacheSession = Depends(get_session)) -> StarredResult:
    found = session.lookup(ref)
    if found is None:
        raise HTTPException(status_code=404, detail="Not matched repository")
    num, result = found
    return StarredResult.from_result(result, num)


__all__ = ["router"]
