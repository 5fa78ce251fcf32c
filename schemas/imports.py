"""
Pydantic schemas for import options, progress and ledger views
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Optional, List
from datetime import datetime

from core.config import settings
from models.base import ImportStatus


class ImportOptions(BaseModel):
    """
    The importer's single configuration surface.

    chunk_size is how many records one decode call asks for; batch_size is
    how many of those are committed per transaction.
    """
    model_config = ConfigDict(validate_assignment=True)

    chunk_size: int = Field(default_factory=lambda: settings.IMPORT_CHUNK_SIZE, ge=1)
    batch_size: int = Field(default_factory=lambda: settings.IMPORT_BATCH_SIZE, ge=1)
    skip_duplicates: bool = Field(default_factory=lambda: settings.IMPORT_SKIP_DUPLICATES)
    validate_data: bool = Field(default_factory=lambda: settings.IMPORT_VALIDATE)


class ImportProgress(BaseModel):
    """Status and counters of one import run of one source"""
    source_id: str
    checkpoint_id: Optional[int] = None
    status: ImportStatus = ImportStatus.RUNNING

    records_processed: int = 0
    records_imported: int = 0
    records_skipped: int = 0
    errors: int = 0

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    resumed_from_offset: int = 0
    estimated_completion: Optional[datetime] = None

    # Position within a multi-source run
    source_index: int = 0
    source_count: int = 1

    @computed_field
    @property
    def resumable(self) -> bool:
        return self.status != ImportStatus.COMPLETED


class CheckpointResponse(BaseModel):
    """Ledger row as returned to operators"""
    id: int
    source_id: str
    status: ImportStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    records_processed: int
    records_imported: int
    records_skipped: int
    errors: int
    error_message: Optional[str] = None
    resumed_from_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ImportStatusResponse(BaseModel):
    """What the import manager is doing right now"""
    is_running: bool
    progress: Optional[ImportProgress] = None
    results: List[ImportProgress] = Field(default_factory=list)
    last_error: Optional[str] = None


class StartImportRequest(BaseModel):
    """Body of a start-import request"""
    source_id: Optional[str] = Field(None, description="Single source to import; all configured sources when omitted")
    resume: bool = False
    chunk_size: Optional[int] = Field(None, ge=1)
    batch_size: Optional[int] = Field(None, ge=1)
    skip_duplicates: Optional[bool] = None
    validate_data: Optional[bool] = None

    def to_options(self) -> ImportOptions:
        overrides = {
            k: v for k, v in self.model_dump(
                include={"chunk_size", "batch_size", "skip_duplicates", "validate_data"}
            ).items() if v is not None
        }
        return ImportOptions(**overrides)
