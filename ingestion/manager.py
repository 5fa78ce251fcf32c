"""
Import manager: the single owner of "is an import running" state.

Each manager instance holds its own running flag, stop signal and latest
progress snapshot, so API handlers, the scheduler and tests can share one
instance (or create isolated ones) without process-wide globals.
"""

import asyncio
import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.exceptions import ImportConflictError, ResumeUnavailableError
from ingestion.checkpoint import CheckpointLedger
from ingestion.extractors.source_stream import StreamingDecoder
from ingestion.runner import BatchImporter
from schemas.imports import ImportOptions, ImportProgress, ImportStatusResponse

logger = logging.getLogger(__name__)


class ImportManager:
    """
    Start, stop and observe imports, one at a time.

    Usage:
        manager = ImportManager(session_maker, decoder)
        await manager.start(resume=True)     # background task
        manager.status()
        manager.stop()                        # cooperative, at batch boundary
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        decoder: StreamingDecoder,
        source_ids: Optional[List[str]] = None,
        options: Optional[ImportOptions] = None,
    ):
        self.session_maker = session_maker
        self.decoder = decoder
        self.source_ids = source_ids
        self.options = options or ImportOptions()

        self._running = False
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._progress: Optional[ImportProgress] = None
        self._results: List[ImportProgress] = []
        self._last_error: Optional[str] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_running(self) -> bool:
        return self._running

    def _acquire(self) -> None:
        if self._running:
            current = self._progress.source_id if self._progress else None
            raise ImportConflictError(
                "An import is already running",
                context={"current_source": current},
            )
        self._running = True
        self._idle.clear()
        self._stop_event.clear()
        self._progress = None
        self._results = []
        self._last_error = None

    def _release(self) -> None:
        self._running = False
        self._idle.set()

    def _record_progress(self, progress: ImportProgress) -> None:
        self._progress = progress

    async def _check_resumable(self, source_id: Optional[str]) -> None:
        async with self.session_maker() as session:
            ledger = CheckpointLedger(session)
            if source_id is not None:
                available = await ledger.can_resume(source_id)
            else:
                available = bool(await ledger.resumable())
        if not available:
            raise ResumeUnavailableError(
                "Nothing to resume",
                context={"source_id": source_id},
            )

    async def _execute(
        self,
        source_id: Optional[str],
        resume: bool,
        options: Optional[ImportOptions],
    ) -> List[ImportProgress]:
        importer = BatchImporter(
            self.session_maker,
            self.decoder,
            options=options or self.options,
            stop_event=self._stop_event,
            on_progress=self._record_progress,
        )
        if source_id is not None:
            progress = await importer.import_source(source_id, resume=resume)
            self._results = [progress]
        else:
            self._results = await importer.import_all(self.source_ids, resume=resume)
        return self._results

    async def run(
        self,
        source_id: Optional[str] = None,
        resume: bool = False,
        options: Optional[ImportOptions] = None,
    ) -> List[ImportProgress]:
        """
        Run an import to the end in the caller's task.

        Raises:
            ImportConflictError: another import is running
            ResumeUnavailableError: ``resume`` with nothing to resume
        """
        self._acquire()
        try:
            if resume:
                await self._check_resumable(source_id)
            return await self._execute(source_id, resume, options)
        finally:
            self._release()

    async def start(
        self,
        source_id: Optional[str] = None,
        resume: bool = False,
        options: Optional[ImportOptions] = None,
    ) -> asyncio.Task:
        """
        Start an import in a background task and return immediately.

        Raises:
            ImportConflictError: another import is running
            ResumeUnavailableError: ``resume`` with nothing to resume
        """
        self._acquire()
        try:
            if resume:
                await self._check_resumable(source_id)
        except BaseException:
            self._release()
            raise

        self._task = asyncio.create_task(self._run_in_background(source_id, resume, options))
        logger.info(f"Import started (source={source_id or 'all'}, resume={resume})")
        return self._task

    async def _run_in_background(
        self,
        source_id: Optional[str],
        resume: bool,
        options: Optional[ImportOptions],
    ) -> None:
        try:
            await self._execute(source_id, resume, options)
        except Exception as e:
            self._last_error = str(e)
            logger.exception("Background import failed")
        finally:
            self._release()

    def stop(self) -> bool:
        """Ask the running import to pause at the next batch boundary"""
        if not self._running:
            return False
        self._stop_event.set()
        logger.info("Stop requested for running import")
        return True

    async def drain(self, timeout: float) -> bool:
        """
        Stop the running import and wait until it has paused.

        Returns:
            False when the import was still running after ``timeout`` seconds
        """
        if self.stop():
            try:
                await asyncio.wait_for(self._idle.wait(), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Import did not pause within {timeout}s")
                return False
            logger.info("Running import paused")
        return True

    async def wait(self) -> None:
        """Wait for the background import, if any, to finish"""
        if self._task is not None:
            await self._task

    def status(self) -> ImportStatusResponse:
        return ImportStatusResponse(
            is_running=self._running,
            progress=self._progress,
            results=list(self._results),
            last_error=self._last_error,
        )
