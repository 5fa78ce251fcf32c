"""
Store maintenance and consistency checks
"""

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from models.inspection import Defect, Inspection
from schemas.stats import DatabaseInfo, StoreValidationReport

logger = logging.getLogger(__name__)


async def validate_imported_data(session: AsyncSession) -> StoreValidationReport:
    """
    Check imported rows for missing required values, out-of-range scores
    and defects whose inspection no longer exists.
    """
    errors = []

    for label, column in (("city", Inspection.city), ("state", Inspection.state), ("material", Inspection.material)):
        missing = (await session.execute(
            select(func.count()).select_from(Inspection).where(or_(column.is_(None), column == ""))
        )).scalar_one()
        if missing:
            errors.append(f"{missing} records missing {label}")

    invalid_scores = (await session.execute(
        select(func.count()).select_from(Inspection).where(
            or_(Inspection.inspection_score < 0, Inspection.inspection_score > 100)
        )
    )).scalar_one()
    if invalid_scores:
        errors.append(f"{invalid_scores} records with invalid inspection scores")

    orphaned = (await session.execute(
        select(func.count())
        .select_from(Defect)
        .outerjoin(Inspection, Defect.inspection_id == Inspection.id)
        .where(Inspection.id.is_(None))
    )).scalar_one()
    if orphaned:
        errors.append(f"{orphaned} orphaned defects")

    if errors:
        logger.warning(f"Store validation found problems: {'; '.join(errors)}")
    return StoreValidationReport(is_valid=not errors, errors=errors)


async def get_database_info(engine: AsyncEngine) -> DatabaseInfo:
    """Page-level size and journal information"""
    async with engine.connect() as conn:
        page_count = (await conn.exec_driver_sql("PRAGMA page_count")).scalar_one()
        page_size = (await conn.exec_driver_sql("PRAGMA page_size")).scalar_one()
        freelist_count = (await conn.exec_driver_sql("PRAGMA freelist_count")).scalar_one()
        journal_mode = (await conn.exec_driver_sql("PRAGMA journal_mode")).scalar_one()

    fragmentation = (freelist_count / page_count * 100) if page_count else 0.0
    return DatabaseInfo(
        page_count=page_count,
        page_size=page_size,
        size_bytes=page_count * page_size,
        freelist_count=freelist_count,
        fragmentation_percent=round(fragmentation, 2),
        journal_mode=journal_mode,
    )


async def run_vacuum(engine: AsyncEngine) -> None:
    """Rebuild the database file; cannot run inside a transaction"""
    async with engine.connect() as conn:
        conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
        await conn.exec_driver_sql("VACUUM")
    logger.info("VACUUM completed")


async def run_analyze(engine: AsyncEngine) -> None:
    """Refresh query planner statistics"""
    async with engine.begin() as conn:
        await conn.exec_driver_sql("ANALYZE")
    logger.info("ANALYZE completed")
