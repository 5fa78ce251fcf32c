from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index, JSON, ForeignKey
from models.base import Base, ImportStatus, utcnow


class ImportCheckpoint(Base):
    """
    One row per import run attempt of a source.

    Purpose:
    - Resume an interrupted import from the last persisted offset
    - Keep an auditable history of runs and their counters

    Design:
    - Created when a run starts, updated in the same transaction as every
      committed batch, finalized once (completed/failed) or left paused
    - records_processed counts non-blank source lines consumed, the unit
      the decoder skips by
    - A resumed run points at the attempt it continued via resumed_from_id
    """
    __tablename__ = "import_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Source identification
    source_id = Column(String(255), nullable=False)

    # Lifecycle
    status = Column(
        Enum(ImportStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        default=ImportStatus.RUNNING,
        nullable=False,
    )
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    # Counters
    records_processed = Column(Integer, nullable=False, default=0)
    records_imported = Column(Integer, nullable=False, default=0)
    records_skipped = Column(Integer, nullable=False, default=0)
    errors = Column(Integer, nullable=False, default=0)

    resumed_from_id = Column(Integer, ForeignKey("import_checkpoints.id", ondelete="SET NULL"), nullable=True)
    options = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_checkpoint_source_started", "source_id", "started_at"),
        Index("idx_checkpoint_status", "status"),
    )

    def __repr__(self):
        return (
            f"<ImportCheckpoint(id={self.id}, source_id='{self.source_id}', "
            f"status={self.status}, processed={self.records_processed})>"
        )
