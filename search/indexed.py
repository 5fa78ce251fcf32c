"""
Indexed search backend reading from the structured store
"""

import logging
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from core.exceptions import SearchError, StoreUnavailableError
from ingestion.transformers.normalizer import InspectionNormalizer
from models.inspection import Inspection
from schemas.search import SearchFilter, SearchResult
from search.filters import build_conditions

logger = logging.getLogger(__name__)


SORT_COLUMNS = {
    "timestamp_utc": Inspection.timestamp_utc,
    "inspection_score": Inspection.inspection_score,
    "city": Inspection.city_key,
    "state": Inspection.state_key,
    "material": Inspection.material_key,
    "diameter_in": Inspection.diameter_in,
    "age_years": Inspection.age_years,
    "requires_repair": Inspection.requires_repair,
}


def order_clauses(filters: SearchFilter) -> List:
    """ORDER BY for a filter: the chosen column, then newest first, then id"""
    if filters.sort_by is None:
        return [Inspection.timestamp_utc.desc(), Inspection.id.asc()]
    column = SORT_COLUMNS[filters.sort_by]
    primary = column.asc() if filters.sort_order == "asc" else column.desc()
    clauses = [primary]
    if filters.sort_by != "timestamp_utc":
        clauses.append(Inspection.timestamp_utc.desc())
    clauses.append(Inspection.id.asc())
    return clauses


class IndexedSearchBackend:
    """
    Exact counts and one ordered page per query.

    Both the count and the page are read inside one read transaction so
    they describe the same snapshot even while an import is writing.
    Order: newest ``timestamp_utc`` first unless the filter picks a sort
    column; ties broken by id.
    """

    name = "indexed"

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    async def search(self, filters: SearchFilter) -> SearchResult:
        conditions = build_conditions(filters)
        offset = (filters.page - 1) * filters.page_size

        try:
            async with self.session_maker() as session:
                async with session.begin():
                    count_query = select(func.count()).select_from(Inspection).where(*conditions)
                    total = (await session.execute(count_query)).scalar_one()

                    page_query = (
                        select(Inspection)
                        .where(*conditions)
                        .options(selectinload(Inspection.defects))
                        .order_by(*order_clauses(filters))
                        .offset(offset)
                        .limit(filters.page_size)
                    )
                    rows = (await session.execute(page_query)).scalars().all()
                    results = [InspectionNormalizer.from_model(row) for row in rows]

        except DBAPIError as e:
            raise StoreUnavailableError(
                "Structured store is unavailable",
                context={"backend": self.name},
                original_exception=e,
            ) from e
        except SQLAlchemyError as e:
            raise SearchError(
                "Indexed search failed",
                context={"backend": self.name, "filters": filters.applied()},
                original_exception=e,
            ) from e

        logger.debug(f"Indexed search: {len(results)} of {total} (page {filters.page})")
        return SearchResult(
            results=results,
            total_count=total,
            page=filters.page,
            page_size=filters.page_size,
            total_is_estimate=False,
            backend=self.name,
        )
