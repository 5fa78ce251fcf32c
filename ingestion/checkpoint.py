"""
Checkpoint ledger: persisted progress of import runs.

The ledger is the only source of resume offsets. Writes never commit on
their own; the importer commits them together with the batch they describe.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import INCOMPLETE_STATUSES, ImportStatus, utcnow
from models.checkpoint import ImportCheckpoint
from schemas.imports import ImportProgress
import logging

logger = logging.getLogger(__name__)


class CheckpointLedger:
    """Read and write ``ImportCheckpoint`` rows"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def start_run(
        self,
        source_id: str,
        options: Optional[Dict[str, Any]] = None,
        resumed_from: Optional[ImportCheckpoint] = None,
    ) -> ImportCheckpoint:
        """
        Add a ``running`` row for a new attempt.

        A resumed attempt inherits the counters of the attempt it continues,
        so records_processed never goes backwards for a source.
        """
        checkpoint = ImportCheckpoint(
            source_id=source_id,
            status=ImportStatus.RUNNING,
            started_at=utcnow(),
            records_processed=resumed_from.records_processed if resumed_from else 0,
            records_imported=resumed_from.records_imported if resumed_from else 0,
            records_skipped=resumed_from.records_skipped if resumed_from else 0,
            errors=resumed_from.errors if resumed_from else 0,
            resumed_from_id=resumed_from.id if resumed_from else None,
            options=options,
        )
        self.db.add(checkpoint)
        await self.db.flush()
        logger.info(
            f"Checkpoint {checkpoint.id} started for {source_id} "
            f"at offset {checkpoint.records_processed}"
        )
        return checkpoint

    async def update(self, checkpoint_id: int, progress: ImportProgress) -> None:
        """Persist the counters of ``progress`` (status stays as given)"""
        await self.db.execute(
            update(ImportCheckpoint)
            .where(ImportCheckpoint.id == checkpoint_id)
            .values(
                records_processed=progress.records_processed,
                records_imported=progress.records_imported,
                records_skipped=progress.records_skipped,
                errors=progress.errors,
                status=progress.status,
            )
        )

    async def finalize(self, checkpoint_id: int, progress: ImportProgress) -> None:
        """Record the terminal status, completion time and error message"""
        await self.db.execute(
            update(ImportCheckpoint)
            .where(ImportCheckpoint.id == checkpoint_id)
            .values(
                records_processed=progress.records_processed,
                records_imported=progress.records_imported,
                records_skipped=progress.records_skipped,
                errors=progress.errors,
                status=progress.status,
                completed_at=progress.completed_at or utcnow(),
                error_message=progress.error_message,
            )
        )

    async def clear_history(self, older_than_days: int = 30) -> int:
        """
        Delete old rows that are no longer needed for resume.

        Removes rows started before the cutoff that are either completed or
        superseded by a newer attempt for the same source.
        """
        cutoff = utcnow() - timedelta(days=older_than_days)
        latest_ids = select(func.max(ImportCheckpoint.id)).group_by(ImportCheckpoint.source_id)
        result = await self.db.execute(
            delete(ImportCheckpoint)
            .where(ImportCheckpoint.started_at < cutoff)
            .where(
                or_(
                    ImportCheckpoint.status == ImportStatus.COMPLETED,
                    ImportCheckpoint.id.not_in(latest_ids),
                )
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Cleared {result.rowcount} checkpoint rows older than {older_than_days} days")
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, checkpoint_id: int) -> Optional[ImportCheckpoint]:
        return await self.db.get(ImportCheckpoint, checkpoint_id)

    async def latest(self, source_id: str) -> Optional[ImportCheckpoint]:
        """Most recent attempt for ``source_id``"""
        result = await self.db.execute(
            select(ImportCheckpoint)
            .where(ImportCheckpoint.source_id == source_id)
            .order_by(ImportCheckpoint.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def resume_point(self, source_id: str) -> Optional[ImportCheckpoint]:
        """The latest attempt, if it did not complete"""
        checkpoint = await self.latest(source_id)
        if checkpoint is None or checkpoint.status == ImportStatus.COMPLETED:
            return None
        return checkpoint

    async def can_resume(self, source_id: str) -> bool:
        return await self.resume_point(source_id) is not None

    async def resumable(self) -> List[ImportCheckpoint]:
        """Latest attempt of every source whose latest attempt is incomplete"""
        latest_ids = select(func.max(ImportCheckpoint.id)).group_by(ImportCheckpoint.source_id)
        result = await self.db.execute(
            select(ImportCheckpoint)
            .where(ImportCheckpoint.id.in_(latest_ids))
            .where(ImportCheckpoint.status.in_(INCOMPLETE_STATUSES))
            .order_by(ImportCheckpoint.id.desc())
        )
        return list(result.scalars().all())

    async def history(self, limit: int = 10) -> List[ImportCheckpoint]:
        result = await self.db.execute(
            select(ImportCheckpoint)
            .order_by(ImportCheckpoint.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def latest_per_source(self) -> List[ImportCheckpoint]:
        """Latest attempt for every source seen so far"""
        latest_ids = select(func.max(ImportCheckpoint.id)).group_by(ImportCheckpoint.source_id)
        result = await self.db.execute(
            select(ImportCheckpoint)
            .where(ImportCheckpoint.id.in_(latest_ids))
            .order_by(ImportCheckpoint.source_id)
        )
        return list(result.scalars().all())
