"""
Import pipeline components for sewer inspection sources.

This package contains everything that moves records from the remote
line-delimited JSON sources into the structured store:

Modules:
    runner: BatchImporter, chunked and resumable import of one or more sources
    manager: ImportManager, the one-import-at-a-time start/stop/status service
    checkpoint: CheckpointLedger, persisted progress used for resume and history
    scheduler: APScheduler integration for periodic re-sync

Subpackages:
    extractors: StreamingDecoder for remote JSONL sources
    transformers: InspectionNormalizer, validation and row mapping
    loaders: InspectionLoader, idempotent SQLite upserts

Architecture:
    Each chunk read through the decoder is split into batches. A batch is
    validated, deduplicated and upserted, then committed together with the
    checkpoint row that describes it, so the ledger always matches the last
    committed batch.

Usage:
    from ingestion.extractors.source_stream import StreamingDecoder
    from ingestion.runner import BatchImporter

Example:
    importer = BatchImporter(get_session_maker(), StreamingDecoder())
    progress = await importer.import_source("sewer-inspections-part1.jsonl")

    print(f"Imported {progress.records_imported} records")

Error Handling:
    Per-record problems are counted and logged; run-level failures end the
    run with status ``failed`` and keep the counters for a later resume.
    See core.exceptions for the hierarchy.
"""

__all__ = [
    "runner",
    "manager",
    "checkpoint",
    "scheduler",
]
