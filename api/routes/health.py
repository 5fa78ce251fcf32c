"""
Health check endpoint with store and import status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_import_manager
from core.database import check_connection
from ingestion.checkpoint import CheckpointLedger
from ingestion.manager import ImportManager
from models.base import ImportStatus
from schemas.api import HealthCheckResponse
from schemas.imports import CheckpointResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    manager: ImportManager = Depends(get_import_manager),
):
    """
    Health check endpoint.

    Returns:
    - Store connectivity status
    - Latest import attempt for every source
    - Whether an import is running
    """

    # Check database connectivity
    db_connected = False

    try:
        db_connected = await check_connection(db)
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    sources = []
    completed_sources = 0
    failed_sources = 0

    if db_connected:
        try:
            checkpoints = await CheckpointLedger(db).latest_per_source()
            for checkpoint in checkpoints:
                if checkpoint.status == ImportStatus.FAILED:
                    failed_sources += 1
                elif checkpoint.status == ImportStatus.COMPLETED:
                    completed_sources += 1
                sources.append(CheckpointResponse.model_validate(checkpoint))
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch import checkpoints: {str(e)}")

    return HealthCheckResponse(
        database_connected=db_connected,
        import_running=manager.is_running,
        sources=sources,
        total_sources=len(sources),
        completed_sources=completed_sources,
        failed_sources=failed_sources
    )
