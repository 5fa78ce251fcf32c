"""
Store statistics endpoint
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_import_manager
from ingestion.manager import ImportManager
from schemas.search import SearchFilter
from schemas.stats import StatsResponse
from search.aggregates import get_database_stats, get_search_stats
from typing import Optional
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    city: Optional[str] = Query(None, description="Restrict the summary to a city"),
    state: Optional[str] = Query(None, description="Restrict the summary to a state"),
    material: Optional[str] = Query(None, description="Restrict the summary to a pipe material"),
    db: AsyncSession = Depends(get_db),
    manager: ImportManager = Depends(get_import_manager),
):
    """
    Get store statistics.

    Returns:
    - Row counts and the most recent import run
    - Score overview, top materials and cities, score buckets
    - Whether an import is running
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"

    logger.info(f"[{request_id}] GET /stats")

    filters = SearchFilter(city=city, state=state, material=material)

    try:
        database = await get_database_stats(db)
        search = await get_search_stats(db, filters)
    except SQLAlchemyError as e:
        logger.error(f"[{request_id}] Failed to compute statistics: {str(e)}")
        raise HTTPException(status_code=503, detail="Structured store is unavailable")

    logger.info(
        f"[{request_id}] Stats: {database.total_inspections} inspections, "
        f"{database.total_defects} defects, {database.total_imports} imports"
    )

    return StatsResponse(
        database=database,
        search=search,
        import_running=manager.is_running,
    )
