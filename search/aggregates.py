"""
Aggregate summaries over the structured store.

These back the statistics endpoint, the operator CLI and any downstream
consumer that wants counts and distributions instead of raw pages.
"""

import logging
from typing import List, Optional

from sqlalchemy import case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.checkpoint import ImportCheckpoint
from models.inspection import Defect, Inspection
from schemas.imports import CheckpointResponse
from schemas.search import SearchFilter
from schemas.stats import (
    DatabaseStats,
    ScoreBucket,
    SearchOptions,
    SearchOverview,
    SearchStats,
    ValueCount,
)
from search.filters import build_conditions

logger = logging.getLogger(__name__)

DISTRIBUTION_LIMIT = 10

SCORE_BUCKETS = [
    ("Excellent", 90, None),
    ("Good", 70, 90),
    ("Fair", 50, 70),
    ("Poor", None, 50),
]

UNIQUE_VALUE_FIELDS = {
    "city": Inspection.city,
    "state": Inspection.state,
    "material": Inspection.material,
    "district": Inspection.district,
}


async def get_search_stats(session: AsyncSession, filters: Optional[SearchFilter] = None) -> SearchStats:
    """Overview, top materials/cities and score buckets for ``filters``"""
    conditions = build_conditions(filters) if filters else []

    row = (await session.execute(
        select(
            func.count(),
            func.avg(Inspection.inspection_score),
            func.min(Inspection.inspection_score),
            func.max(Inspection.inspection_score),
            func.coalesce(func.sum(case((Inspection.requires_repair.is_(True), 1), else_=0)), 0),
            func.count(distinct(Inspection.city)),
            func.count(distinct(Inspection.state)),
            func.count(distinct(Inspection.material)),
        ).where(*conditions)
    )).one()

    overview = SearchOverview(
        total_inspections=row[0],
        average_score=round(row[1], 2) if row[1] is not None else None,
        min_score=row[2],
        max_score=row[3],
        repairs_needed=int(row[4]),
        unique_cities=row[5],
        unique_states=row[6],
        unique_materials=row[7],
    )

    return SearchStats(
        overview=overview,
        material_distribution=await _distribution(session, Inspection.material, conditions),
        city_distribution=await _distribution(session, Inspection.city, conditions),
        score_distribution=await _score_buckets(session, conditions),
    )


async def _distribution(session: AsyncSession, column, conditions) -> List[ValueCount]:
    count = func.count().label("count")
    result = await session.execute(
        select(column, count, func.avg(Inspection.inspection_score))
        .where(*conditions)
        .group_by(column)
        .order_by(count.desc(), column)
        .limit(DISTRIBUTION_LIMIT)
    )
    return [
        ValueCount(
            value=value,
            count=n,
            average_score=round(avg, 2) if avg is not None else None,
        )
        for value, n, avg in result.all()
    ]


async def _score_buckets(session: AsyncSession, conditions) -> List[ScoreBucket]:
    buckets = []
    for label, low, high in SCORE_BUCKETS:
        query = select(func.count()).select_from(Inspection).where(*conditions)
        if low is not None:
            query = query.where(Inspection.inspection_score >= low)
        if high is not None:
            query = query.where(Inspection.inspection_score < high)
        n = (await session.execute(query)).scalar_one()
        buckets.append(ScoreBucket(label=label, min_score=low, max_score=high, count=n))
    return buckets


async def get_unique_values(session: AsyncSession, field: str) -> List[str]:
    """
    Distinct non-empty values of ``field``, sorted.

    Raises:
        ValueError: ``field`` is not one of city, state, material, district
    """
    column = UNIQUE_VALUE_FIELDS.get(field)
    if column is None:
        raise ValueError(f"Unsupported field {field!r}, expected one of {sorted(UNIQUE_VALUE_FIELDS)}")

    result = await session.execute(
        select(distinct(column))
        .where(column.is_not(None), column != "")
        .order_by(column)
    )
    return list(result.scalars().all())


async def get_search_options(session: AsyncSession) -> SearchOptions:
    return SearchOptions(
        cities=await get_unique_values(session, "city"),
        states=await get_unique_values(session, "state"),
        materials=await get_unique_values(session, "material"),
    )


async def get_database_stats(session: AsyncSession) -> DatabaseStats:
    """Row counts and the most recent import run"""
    total_inspections = (await session.execute(select(func.count()).select_from(Inspection))).scalar_one()
    total_defects = (await session.execute(select(func.count()).select_from(Defect))).scalar_one()
    total_imports = (await session.execute(select(func.count()).select_from(ImportCheckpoint))).scalar_one()

    last = (await session.execute(
        select(ImportCheckpoint).order_by(ImportCheckpoint.id.desc()).limit(1)
    )).scalar_one_or_none()

    return DatabaseStats(
        total_inspections=total_inspections,
        total_defects=total_defects,
        total_imports=total_imports,
        last_import=CheckpointResponse.model_validate(last) if last else None,
    )
