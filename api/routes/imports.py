"""
Import control endpoints: start, stop, status and ledger views
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_db, get_import_manager
from core.exceptions import ImportConflictError, ResumeUnavailableError
from core.maintenance import validate_imported_data
from ingestion.checkpoint import CheckpointLedger
from ingestion.manager import ImportManager
from schemas.api import ImportAccepted
from schemas.imports import CheckpointResponse, ImportStatusResponse, StartImportRequest
from schemas.stats import StoreValidationReport
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/imports", tags=["Imports"])


@router.post("", response_model=ImportAccepted, status_code=202)
async def start_import(
    body: Optional[StartImportRequest] = None,
    manager: ImportManager = Depends(get_import_manager),
):
    """
    Start an import in the background.

    - 409 when an import is already running
    - 404 when ``resume`` is set and there is nothing to resume
    """
    body = body or StartImportRequest()

    try:
        await manager.start(
            source_id=body.source_id,
            resume=body.resume,
            options=body.to_options(),
        )
    except ImportConflictError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except ResumeUnavailableError as e:
        raise HTTPException(status_code=404, detail=e.message)

    return ImportAccepted(
        message="Import resumed" if body.resume else "Import started",
        source_id=body.source_id,
        resume=body.resume,
    )


@router.post("/stop", response_model=ImportAccepted)
async def stop_import(manager: ImportManager = Depends(get_import_manager)):
    """Pause the running import at the next batch boundary"""
    if not manager.stop():
        raise HTTPException(status_code=404, detail="No import is running")
    return ImportAccepted(message="Stop requested")


@router.get("/status", response_model=ImportStatusResponse)
async def import_status(manager: ImportManager = Depends(get_import_manager)):
    return manager.status()


@router.get("/history", response_model=List[CheckpointResponse])
async def import_history(
    limit: int = Query(20, ge=1, le=200, description="Number of runs to return"),
    db: AsyncSession = Depends(get_db),
):
    """Most recent import runs, newest first"""
    checkpoints = await CheckpointLedger(db).history(limit=limit)
    return [CheckpointResponse.model_validate(c) for c in checkpoints]


@router.get("/resumable", response_model=List[CheckpointResponse])
async def resumable_imports(db: AsyncSession = Depends(get_db)):
    """Sources whose latest run did not complete"""
    checkpoints = await CheckpointLedger(db).resumable()
    return [CheckpointResponse.model_validate(c) for c in checkpoints]


@router.post("/validate", response_model=StoreValidationReport)
async def validate_store(db: AsyncSession = Depends(get_db)):
    """Consistency checks over the imported data"""
    return await validate_imported_data(db)
