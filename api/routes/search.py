"""
Search endpoint with pagination and filtering
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_search_engine
from core.config import settings
from core.exceptions import SearchError, StoreUnavailableError, UnsupportedQueryError
from schemas.api import SearchResponse, PaginationMetadata
from schemas.search import SearchFilter, SearchResult, SortField
from schemas.stats import SearchOptions
from search.aggregates import get_search_options
from search.engine import SearchEngine
from typing import Awaitable, Literal, Optional
from datetime import datetime
import time
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Search"])


async def _run_search(request_id: str, pending: Awaitable[SearchResult]) -> SearchResult:
    """Await a search, mapping backend failures to HTTP errors"""
    try:
        return await pending
    except StoreUnavailableError as e:
        logger.error(f"[{request_id}] {e}")
        raise HTTPException(status_code=503, detail=e.message)
    except UnsupportedQueryError as e:
        logger.warning(f"[{request_id}] {e}")
        raise HTTPException(status_code=400, detail=e.message)
    except SearchError as e:
        logger.error(f"[{request_id}] {e}", extra={"error_context": e.to_dict()})
        raise HTTPException(status_code=502, detail=e.message)


def _to_response(result: SearchResult, filters_applied: dict) -> SearchResponse:
    return SearchResponse(
        results=result.results,
        pagination=PaginationMetadata(
            total_items=result.total_count,
            total_pages=result.total_pages,
            current_page=result.page,
            page_size=result.page_size,
            has_next=result.has_next,
            has_previous=result.has_previous,
        ),
        total_is_estimate=result.total_is_estimate,
        backend=result.backend,
        filters_applied=filters_applied,
    )


@router.get("/search", response_model=SearchResponse)
async def search_inspections(
    request: Request,
    city: Optional[str] = Query(None, description="Case-insensitive substring of the city"),
    state: Optional[str] = Query(None, description="State, case-insensitive exact match"),
    material: Optional[str] = Query(None, description="Case-insensitive substring of the pipe material"),
    min_score: Optional[float] = Query(None, description="Minimum inspection score (inclusive)"),
    max_score: Optional[float] = Query(None, description="Maximum inspection score (inclusive)"),
    requires_repair: Optional[bool] = Query(None, description="Only inspections that do (not) require repair"),
    age_min: Optional[float] = Query(None, description="Minimum pipe age in years (inclusive)"),
    age_max: Optional[float] = Query(None, description="Maximum pipe age in years (inclusive)"),
    diameter_min: Optional[float] = Query(None, description="Minimum pipe diameter in inches (inclusive)"),
    diameter_max: Optional[float] = Query(None, description="Maximum pipe diameter in inches (inclusive)"),
    date_from: Optional[datetime] = Query(None, description="Inspected at or after (ISO-8601, UTC when no zone)"),
    date_to: Optional[datetime] = Query(None, description="Inspected at or before (ISO-8601, UTC when no zone)"),
    defect_severity_min: Optional[int] = Query(None, description="At least one defect with this severity or higher"),
    q: Optional[str] = Query(None, description="Case-insensitive text in city, state, material, district, street or notes"),
    sort_by: Optional[SortField] = Query(None, description="Sort column; newest first when omitted"),
    sort_order: Literal["asc", "desc"] = Query("desc", description="Sort direction for sort_by"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(settings.SEARCH_DEFAULT_PAGE_SIZE, ge=1, le=settings.SEARCH_MAX_PAGE_SIZE, description="Items per page"),
    engine: SearchEngine = Depends(get_search_engine),
):
    """
    Search inspections.

    Served from the structured store when it is available, otherwise by
    scanning the remote sources (the total is then an estimate, and
    sort_by is rejected with 400).
    """
    start_time = time.time()
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")

    try:
        filters = SearchFilter(
            city=city,
            state=state,
            material=material,
            score_min=min_score,
            score_max=max_score,
            requires_repair=requires_repair,
            age_min=age_min,
            age_max=age_max,
            diameter_min=diameter_min,
            diameter_max=diameter_max,
            date_from=date_from,
            date_to=date_to,
            defect_severity_min=defect_severity_min,
            text=q,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            page_size=page_size,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=[err["msg"] for err in e.errors()])
    logger.info(f"[{request_id}] GET /search - page={page}, page_size={page_size}, filters={filters.applied()}")

    result = await _run_search(request_id, engine.search(filters))

    api_latency_ms = (time.time() - start_time) * 1000
    logger.info(
        f"[{request_id}] Returned {len(result.results)} of {result.total_count} "
        f"({result.backend}, {api_latency_ms:.2f}ms)"
    )
    return _to_response(result, filters.applied())


@router.get("/search/text", response_model=SearchResponse)
async def full_text_search(
    request: Request,
    q: str = Query(..., min_length=1, description="Text to look for in city, state, material, district, street or notes"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(settings.SEARCH_DEFAULT_PAGE_SIZE, ge=1, le=settings.SEARCH_MAX_PAGE_SIZE, description="Items per page"),
    engine: SearchEngine = Depends(get_search_engine),
):
    """Free-text search, best inspection scores first"""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    if not q.strip():
        raise HTTPException(status_code=422, detail="q must not be blank")
    logger.info(f"[{request_id}] GET /search/text - q={q!r}, page={page}")

    result = await _run_search(request_id, engine.full_text_search(q, page=page, page_size=page_size))
    return _to_response(result, {"text": q.strip()})


@router.get("/search/options", response_model=SearchOptions)
async def search_options(db: AsyncSession = Depends(get_db)):
    """Distinct cities, states and materials in the store"""
    try:
        return await get_search_options(db)
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch search options: {str(e)}")
        raise HTTPException(status_code=503, detail="Structured store is unavailable")
