"""
Load validated inspections into SQLite with upsert logic (idempotency)
"""

from typing import Iterable, List, Optional, Set, Tuple
from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from models.base import utcnow
from models.inspection import Inspection, Defect
from schemas.inspection import InspectionRecord
from ingestion.transformers.normalizer import InspectionNormalizer
import logging

logger = logging.getLogger(__name__)

ID_LOOKUP_CHUNK = 500


class InspectionLoader:
    """
    Write inspections and their defects with idempotent upserts.

    Ensures:
    - No duplicate rows on repeated runs (id is the conflict key)
    - A re-imported inspection has its defect set replaced
    - One failing record is rolled back to its savepoint without voiding
      the rest of the batch

    The loader never commits; the caller owns the transaction so that the
    batch and its checkpoint update land together.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def existing_ids(self, ids: Iterable[str]) -> Set[str]:
        """Return the subset of ``ids`` already present in the store"""
        ids = list(dict.fromkeys(ids))
        found: Set[str] = set()
        for i in range(0, len(ids), ID_LOOKUP_CHUNK):
            chunk = ids[i:i + ID_LOOKUP_CHUNK]
            result = await self.db.execute(
                select(Inspection.id).where(Inspection.id.in_(chunk))
            )
            found.update(result.scalars().all())
        return found

    async def load(
        self,
        records: List[InspectionRecord],
        source_id: Optional[str] = None
    ) -> Tuple[int, List[Tuple[InspectionRecord, SQLAlchemyError]]]:
        """
        Upsert records, each inside its own SAVEPOINT.

        Args:
            records: Validated inspections
            source_id: Source the records came from

        Returns:
            (number written, list of (record, error) that were rolled back)
        """
        if not records:
            return 0, []

        loaded = 0
        failed: List[Tuple[InspectionRecord, SQLAlchemyError]] = []

        for record in records:
            try:
                async with self.db.begin_nested():
                    await self._upsert(record, source_id)
                loaded += 1
            except SQLAlchemyError as e:
                logger.warning(f"Failed to write inspection {record.id}: {e}")
                failed.append((record, e))

        logger.debug(f"Wrote {loaded} inspections ({len(failed)} failed)")
        return loaded, failed

    async def _upsert(self, record: InspectionRecord, source_id: Optional[str]) -> None:
        row = InspectionNormalizer.to_row(record, source_id)
        now = utcnow()

        # SQLite INSERT ... ON CONFLICT (upsert)
        stmt = insert(Inspection).values(**row, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                **{key: stmt.excluded[key] for key in row if key != "id"},
                "updated_at": now,
            }
        )
        await self.db.execute(stmt)

        await self.db.execute(delete(Defect).where(Defect.inspection_id == record.id))
        defect_rows = InspectionNormalizer.to_defect_rows(record)
        if defect_rows:
            await self.db.execute(
                insert(Defect),
                [{**defect, "created_at": now} for defect in defect_rows]
            )
