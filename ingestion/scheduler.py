import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from core.exceptions import ImportConflictError, PipelineError
from ingestion.manager import ImportManager

logger = logging.getLogger(__name__)


class ImportScheduler:
    """Periodically re-sync all configured sources through an ImportManager"""

    def __init__(self, manager: ImportManager, interval_minutes: int = None):
        self.manager = manager
        self.interval_minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler()

    async def run_import_job(self):
        """Job to run a full import; skipped while another import runs"""
        logger.info("Scheduler: Starting import job")
        try:
            results = await self.manager.run()
            imported = sum(r.records_imported for r in results)
            logger.info(f"Scheduler: Import job finished, {imported} records imported")
        except ImportConflictError:
            logger.info("Scheduler: Import already running, skipping this interval")
        except PipelineError as e:
            logger.error(f"Scheduler: Import job failed - {e}", extra={"error_context": e.to_dict()})

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_import_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="import_sync_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Import Scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Import Scheduler stopped")
