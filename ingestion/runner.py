# ============================================================================
# File: ingestion/runner.py
# Description: Batch importer moving remote inspection sources into the store
# ============================================================================
"""
Batch Importer - moves decoded source records into the structured store.

This module provides resumable import orchestration with:
- Chunked reads through the streaming decoder at a persisted offset
- Per-batch validation, deduplication and idempotent upsert
- A checkpoint update committed in the same transaction as each batch
- Cooperative stop at batch boundaries
- Partial failure support (bad records are counted, the run continues)
"""

from typing import Callable, List, Optional
from datetime import datetime, timedelta
import asyncio
import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.exceptions import (
    PipelineError,
    LoadError,
    BatchWriteError,
    ImportRunError,
    RecordValidationError,
    ResumeUnavailableError,
)
from ingestion.checkpoint import CheckpointLedger
from ingestion.extractors.source_stream import DecodedRecord, RecordStream, StreamingDecoder
from ingestion.loaders.sqlite_loader import InspectionLoader
from ingestion.transformers.normalizer import InspectionNormalizer
from models.base import ImportStatus, utcnow
from schemas.imports import ImportOptions, ImportProgress

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[ImportProgress], None]


class BatchImporter:
    """
    Resumable, idempotent importer.

    Responsibilities:
    - Resolve the starting offset (fresh or from the ledger)
    - Decode chunks of ``chunk_size`` records and commit them in batches of
      ``batch_size``
    - Keep the checkpoint consistent with the last committed batch
    - Report progress to an observer after every committed batch

    Counters:
    - records_processed: non-blank source lines consumed (the resume offset)
    - records_imported: rows written
    - records_skipped: records dropped because their id already exists
    - errors: malformed lines, invalid records and failed writes
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        decoder: StreamingDecoder,
        options: Optional[ImportOptions] = None,
        stop_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressObserver] = None,
    ):
        self.session_maker = session_maker
        self.decoder = decoder
        self.options = options or ImportOptions()
        self.stop_event = stop_event or asyncio.Event()
        self.on_progress = on_progress
        self.progress: Optional[ImportProgress] = None
        self._run_started = 0.0
        self._estimated_lines: Optional[float] = None

    @property
    def stop_requested(self) -> bool:
        return self.stop_event.is_set()

    async def import_all(
        self,
        source_ids: Optional[List[str]] = None,
        resume: bool = False,
    ) -> List[ImportProgress]:
        """
        Import sources one after another.

        Stops at the first failed source (returning the results so far) and
        after a paused one. With ``resume`` each source continues from its
        incomplete checkpoint when it has one; sources whose latest run
        completed are left alone.
        """
        source_ids = list(source_ids or settings.SOURCE_FILES)
        results: List[ImportProgress] = []

        for index, source_id in enumerate(source_ids):
            if self.stop_requested:
                logger.info("Stop requested, not starting further sources")
                break

            resume_this = False
            if resume:
                async with self.session_maker() as session:
                    ledger = CheckpointLedger(session)
                    latest = await ledger.latest(source_id)
                if latest is not None and latest.status == ImportStatus.COMPLETED:
                    logger.info(f"Skipping {source_id}: already completed")
                    continue
                resume_this = latest is not None

            progress = await self.import_source(
                source_id,
                resume=resume_this,
                source_index=index,
                source_count=len(source_ids),
            )
            results.append(progress)

            if progress.status == ImportStatus.FAILED:
                logger.error(f"Import of {source_id} failed, stopping multi-source run")
                break
            if progress.status == ImportStatus.PAUSED:
                break

        return results

    async def import_source(
        self,
        source_id: str,
        resume: bool = False,
        source_index: int = 0,
        source_count: int = 1,
    ) -> ImportProgress:
        """
        Import one source.

        Returns:
            Final ImportProgress. Fatal errors do not raise; they end the run
            with status ``failed`` and the counters of the last committed batch.

        Raises:
            ResumeUnavailableError: ``resume`` was requested and the source has
                no incomplete checkpoint
        """
        async with self.session_maker() as session:
            ledger = CheckpointLedger(session)

            # --------------------------------------------------
            # PHASE 1: RESOLVE STARTING OFFSET
            # --------------------------------------------------
            resumed_from = None
            if resume:
                resumed_from = await ledger.resume_point(source_id)
                if resumed_from is None:
                    raise ResumeUnavailableError(
                        f"No incomplete import to resume for {source_id}",
                        context={"source_id": source_id},
                    )

            checkpoint = await ledger.start_run(
                source_id,
                options=self.options.model_dump(),
                resumed_from=resumed_from,
            )
            await session.commit()

            self.progress = ImportProgress(
                source_id=source_id,
                checkpoint_id=checkpoint.id,
                status=ImportStatus.RUNNING,
                records_processed=checkpoint.records_processed,
                records_imported=checkpoint.records_imported,
                records_skipped=checkpoint.records_skipped,
                errors=checkpoint.errors,
                started_at=checkpoint.started_at,
                resumed_from_offset=checkpoint.records_processed,
                source_index=source_index,
                source_count=source_count,
            )
            logger.info(
                f"Importing {source_id} from offset {checkpoint.records_processed} "
                f"({'resume' if resume else 'fresh'})"
            )

            self._run_started = time.monotonic()
            self._estimated_lines = None
            normalizer = InspectionNormalizer(validate_data=self.options.validate_data)

            try:
                await self._run_chunks(session, ledger, normalizer)

            except PipelineError as e:
                logger.error(
                    f"Import of {source_id} failed: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                await session.rollback()
                self._set_status(ImportStatus.FAILED, e.message)

            except SQLAlchemyError as e:
                error = LoadError(
                    f"Store failure during import: {e}",
                    context={"source_id": source_id},
                    original_exception=e,
                )
                logger.error(str(error), extra={"error_context": error.to_dict()})
                await session.rollback()
                self._set_status(ImportStatus.FAILED, error.message)

            except Exception as e:
                logger.exception(f"Unexpected error importing {source_id}")
                await session.rollback()
                self._set_status(ImportStatus.FAILED, str(e))

            # --------------------------------------------------
            # FINALIZE
            # --------------------------------------------------
            finished = utcnow()
            final = {"completed_at": finished}
            if self.progress.status == ImportStatus.COMPLETED:
                final["estimated_completion"] = finished
            progress = self.progress.model_copy(update=final)
            self.progress = progress
            try:
                await ledger.finalize(progress.checkpoint_id, progress)
                await session.commit()
            except SQLAlchemyError as e:
                raise LoadError(
                    f"Could not finalize checkpoint for {source_id}",
                    context={"source_id": source_id, "checkpoint_id": progress.checkpoint_id},
                    original_exception=e,
                ) from e

        logger.info(
            f"Import of {source_id} {progress.status.value}: "
            f"processed={progress.records_processed}, imported={progress.records_imported}, "
            f"skipped={progress.records_skipped}, errors={progress.errors}"
        )
        self._notify(progress)
        return progress

    async def _run_chunks(
        self,
        session: AsyncSession,
        ledger: CheckpointLedger,
        normalizer: InspectionNormalizer,
    ) -> None:
        chunk_size = self.options.chunk_size
        batch_size = self.options.batch_size
        source_id = self.progress.source_id

        while True:
            if self.stop_requested:
                self._set_status(ImportStatus.PAUSED)
                return

            # --------------------------------------------------
            # PHASE 2: DECODE ONE CHUNK
            # --------------------------------------------------
            offset = self.progress.records_processed
            chunk: List[DecodedRecord] = []
            async with self.decoder.decode(source_id, limit=chunk_size, skip=offset) as stream:
                async for record in stream:
                    chunk.append(record)
            self._update_size_estimate(stream)

            # --------------------------------------------------
            # PHASE 3: BATCHES
            # --------------------------------------------------
            for start in range(0, len(chunk), batch_size):
                if start > 0 and self.stop_requested:
                    self._set_status(ImportStatus.PAUSED)
                    return
                await self._process_batch(session, ledger, normalizer, chunk[start:start + batch_size])

            if chunk and self.progress.records_processed <= offset:
                raise ImportRunError(
                    "Import made no progress on a chunk",
                    context={"source_id": source_id, "offset": offset, "chunk_records": len(chunk)},
                )

            if not chunk or stream.exhausted:
                # Malformed lines after the last good record
                trailing = stream.lines_consumed - self.progress.records_processed
                if stream.exhausted and trailing > 0:
                    updated = self.progress.model_copy(update={
                        "records_processed": stream.lines_consumed,
                        "errors": self.progress.errors + trailing,
                    })
                    await ledger.update(updated.checkpoint_id, updated)
                    await session.commit()
                    self.progress = updated
                    self._notify(updated)
                self._set_status(ImportStatus.COMPLETED)
                return

    async def _process_batch(
        self,
        session: AsyncSession,
        ledger: CheckpointLedger,
        normalizer: InspectionNormalizer,
        batch: List[DecodedRecord],
    ) -> None:
        """Validate, dedup and write one batch; commit it with its checkpoint"""
        progress = self.progress
        last_line = batch[-1].line_number
        # Lines between the previous offset and this batch that produced no record
        errors = (last_line - progress.records_processed) - len(batch)

        # (a) validate
        valid = []
        for decoded in batch:
            try:
                valid.append(normalizer.normalize(decoded.data, decoded.line_number))
            except RecordValidationError as e:
                errors += 1
                logger.warning(str(e))

        loader = InspectionLoader(session)

        # (b) deduplicate
        skipped = 0
        if self.options.skip_duplicates and valid:
            existing = await loader.existing_ids(r.id for r in valid)
            seen = set()
            fresh = []
            for record in valid:
                if record.id in existing or record.id in seen:
                    skipped += 1
                    continue
                seen.add(record.id)
                fresh.append(record)
            valid = fresh

        # (c) upsert
        loaded, failed = await loader.load(valid, progress.source_id)
        errors += len(failed)

        updated = progress.model_copy(update={
            "records_processed": last_line,
            "records_imported": progress.records_imported + loaded,
            "records_skipped": progress.records_skipped + skipped,
            "errors": progress.errors + errors,
            "estimated_completion": self._estimate_completion(last_line),
        })
        await ledger.update(updated.checkpoint_id, updated)

        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            error = BatchWriteError(
                "Batch commit failed, counting its records as errors",
                context={"source_id": progress.source_id, "batch_size": len(batch)},
                original_exception=e,
            )
            logger.error(str(error), extra={"error_context": error.to_dict()})
            updated = updated.model_copy(update={
                "records_imported": progress.records_imported,
                "errors": updated.errors + loaded,
            })
            await ledger.update(updated.checkpoint_id, updated)
            await session.commit()

        logger.debug(
            f"{progress.source_id}: batch up to line {last_line} "
            f"(+{loaded} imported, +{skipped} skipped, +{errors} errors)"
        )
        self.progress = updated
        self._notify(updated)

    def _set_status(self, status: ImportStatus, error_message: Optional[str] = None) -> None:
        self.progress = self.progress.model_copy(
            update={"status": status, "error_message": error_message}
        )

    def _notify(self, progress: ImportProgress) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(progress.model_copy())
        except Exception:
            logger.exception("Progress observer raised; continuing import")

    def _update_size_estimate(self, stream: RecordStream) -> None:
        """Source size in lines: Content-Length over the mean line size read so far"""
        if stream.content_length and stream.lines_consumed and stream.bytes_consumed:
            self._estimated_lines = stream.content_length / (stream.bytes_consumed / stream.lines_consumed)

    def _estimate_completion(self, records_processed: int) -> Optional[datetime]:
        """Projected finish time from this run's throughput"""
        done = records_processed - self.progress.resumed_from_offset
        elapsed = time.monotonic() - self._run_started
        if self._estimated_lines is None or done <= 0 or elapsed <= 0:
            return None
        remaining = max(self._estimated_lines - records_processed, 0.0)
        return utcnow() + timedelta(seconds=remaining * elapsed / done)
