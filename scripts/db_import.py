"""
Operator CLI for the structured store.

Usage
-----
python -m scripts.db_import import [--source S] [--batch-size N] [--no-validate] [--no-skip-duplicates]
python -m scripts.db_import resume [--source S | --list]
python -m scripts.db_import history [--limit N]
python -m scripts.db_import clear-history [--days N]
python -m scripts.db_import validate
python -m scripts.db_import stats
python -m scripts.db_import options
python -m scripts.db_import maintenance [--vacuum] [--analyze] [--info]
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import close_database, get_engine, get_session_maker, init_database
from core.exceptions import ImportConflictError, PipelineError, ResumeUnavailableError
from core.logging import setup_logging
from core.maintenance import get_database_info, run_analyze, run_vacuum, validate_imported_data
from ingestion.checkpoint import CheckpointLedger
from ingestion.extractors.source_stream import StreamingDecoder
from ingestion.manager import ImportManager
from models.base import ImportStatus
from schemas.imports import ImportOptions, ImportProgress
from search.aggregates import get_database_stats, get_search_options, get_search_stats

logger = logging.getLogger(__name__)


def _print_progress(progress: ImportProgress) -> None:
    print(
        f"[{progress.source_index + 1}/{progress.source_count}] {progress.source_id}: "
        f"processed={progress.records_processed} imported={progress.records_imported} "
        f"skipped={progress.records_skipped} errors={progress.errors} ({progress.status.value})"
    )


def _print_checkpoint(checkpoint) -> None:
    finished = checkpoint.completed_at.isoformat(sep=" ", timespec="seconds") if checkpoint.completed_at else "-"
    print(
        f"#{checkpoint.id:<5} {checkpoint.source_id:<40} {checkpoint.status.value:<10} "
        f"started={checkpoint.started_at.isoformat(sep=' ', timespec='seconds')} finished={finished} "
        f"processed={checkpoint.records_processed} imported={checkpoint.records_imported} "
        f"skipped={checkpoint.records_skipped} errors={checkpoint.errors}"
    )
    if checkpoint.error_message:
        print(f"       error: {checkpoint.error_message}")


class _PrintingManager(ImportManager):
    """Import manager that also echoes every progress snapshot"""

    def _record_progress(self, progress: ImportProgress) -> None:
        super()._record_progress(progress)
        _print_progress(progress)


async def _run_import(source: Optional[str], resume: bool, options: ImportOptions) -> int:
    manager = _PrintingManager(get_session_maker(), StreamingDecoder(), options=options)
    try:
        results = await manager.run(source_id=source, resume=resume)
    except (ImportConflictError, ResumeUnavailableError) as e:
        print(f"Cannot start import: {e.message}")
        return 1

    failed = [r for r in results if r.status == ImportStatus.FAILED]
    total = sum(r.records_imported for r in results)
    print(f"Imported {total} records from {len(results)} source(s)")
    for r in failed:
        print(f"  {r.source_id} failed: {r.error_message}")
    return 1 if failed else 0


async def cmd_import(args: argparse.Namespace) -> int:
    overrides = {
        "batch_size": args.batch_size,
        "chunk_size": args.chunk_size,
        "validate_data": not args.no_validate,
        "skip_duplicates": not args.no_skip_duplicates,
    }
    options = ImportOptions(**{k: v for k, v in overrides.items() if v is not None})
    return await _run_import(args.source, resume=False, options=options)


async def cmd_resume(args: argparse.Namespace) -> int:
    if args.list:
        async with get_session_maker()() as session:
            checkpoints = await CheckpointLedger(session).resumable()
        if not checkpoints:
            print("No resumable imports")
        for checkpoint in checkpoints:
            _print_checkpoint(checkpoint)
        return 0
    return await _run_import(args.source, resume=True, options=ImportOptions())


async def cmd_history(args: argparse.Namespace) -> int:
    async with get_session_maker()() as session:
        checkpoints = await CheckpointLedger(session).history(limit=args.limit)
    if not checkpoints:
        print("No import history")
    for checkpoint in checkpoints:
        _print_checkpoint(checkpoint)
    return 0


async def cmd_clear_history(args: argparse.Namespace) -> int:
    async with get_session_maker()() as session:
        removed = await CheckpointLedger(session).clear_history(older_than_days=args.days)
        await session.commit()
    print(f"Removed {removed} checkpoint rows older than {args.days} days")
    return 0


async def cmd_validate(args: argparse.Namespace) -> int:
    async with get_session_maker()() as session:
        report = await validate_imported_data(session)
    if report.is_valid:
        print("Store is consistent")
        return 0
    for error in report.errors:
        print(f"  {error}")
    return 1


async def cmd_stats(args: argparse.Namespace) -> int:
    async with get_session_maker()() as session:
        database = await get_database_stats(session)
        search = await get_search_stats(session)

    print(f"Inspections: {database.total_inspections}")
    print(f"Defects:     {database.total_defects}")
    print(f"Imports:     {database.total_imports}")
    if database.last_import:
        print(f"Last import: {database.last_import.source_id} ({database.last_import.status.value})")

    overview = search.overview
    print(f"Average score: {overview.average_score}  (min {overview.min_score}, max {overview.max_score})")
    print(f"Repairs needed: {overview.repairs_needed}")
    print("Materials:")
    for item in search.material_distribution:
        print(f"  {item.value:<20} {item.count:>8}  avg {item.average_score}")
    print("Cities:")
    for item in search.city_distribution:
        print(f"  {item.value:<20} {item.count:>8}  avg {item.average_score}")
    print("Scores:")
    for bucket in search.score_distribution:
        print(f"  {bucket.label:<10} {bucket.count}")
    return 0


async def cmd_options(args: argparse.Namespace) -> int:
    async with get_session_maker()() as session:
        options = await get_search_options(session)
    print(f"Cities ({len(options.cities)}): {', '.join(options.cities)}")
    print(f"States ({len(options.states)}): {', '.join(options.states)}")
    print(f"Materials ({len(options.materials)}): {', '.join(options.materials)}")
    return 0


async def cmd_maintenance(args: argparse.Namespace) -> int:
    engine = get_engine()
    if not (args.vacuum or args.analyze or args.info):
        args.info = True

    if args.vacuum:
        await run_vacuum(engine)
        print("VACUUM completed")
    if args.analyze:
        await run_analyze(engine)
        print("ANALYZE completed")
    if args.info:
        info = await get_database_info(engine)
        print(f"Size: {info.size_bytes / (1024 * 1024):.2f} MB ({info.page_count} pages of {info.page_size} bytes)")
        print(f"Free pages: {info.freelist_count} ({info.fragmentation_percent}% fragmentation)")
        print(f"Journal mode: {info.journal_mode}")
    return 0


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="db_import", description="Sewer inspection store operations")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL for this run.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("import", help="Import all configured sources, or one with --source.")
    sp.add_argument("--source", default=None, help="Single source id to import.")
    sp.add_argument("--batch-size", type=positive_int, default=None, help="Records committed per transaction.")
    sp.add_argument("--chunk-size", type=positive_int, default=None, help="Records requested per decode call.")
    sp.add_argument("--no-validate", action="store_true", help="Fill defaults instead of rejecting invalid records.")
    sp.add_argument("--no-skip-duplicates", action="store_true", help="Overwrite records that already exist.")
    sp.set_defaults(func=cmd_import)

    sp = sub.add_parser("resume", help="Resume interrupted imports.")
    group = sp.add_mutually_exclusive_group()
    group.add_argument("--source", default=None, help="Resume a single source.")
    group.add_argument("--list", action="store_true", help="List resumable imports instead.")
    sp.set_defaults(func=cmd_resume)

    sp = sub.add_parser("history", help="Show recent import runs.")
    sp.add_argument("--limit", type=positive_int, default=10, help="Number of runs. Default: 10")
    sp.set_defaults(func=cmd_history)

    sp = sub.add_parser("clear-history", help="Delete old checkpoint rows not needed for resume.")
    sp.add_argument("--days", type=int, default=30, help="Keep rows newer than this. Default: 30")
    sp.set_defaults(func=cmd_clear_history)

    sp = sub.add_parser("validate", help="Check imported data for consistency.")
    sp.set_defaults(func=cmd_validate)

    sp = sub.add_parser("stats", help="Show store statistics.")
    sp.set_defaults(func=cmd_stats)

    sp = sub.add_parser("options", help="List distinct cities, states and materials.")
    sp.set_defaults(func=cmd_options)

    sp = sub.add_parser("maintenance", help="VACUUM, ANALYZE or size information.")
    sp.add_argument("--vacuum", action="store_true", help="Rebuild the database file.")
    sp.add_argument("--analyze", action="store_true", help="Refresh query planner statistics.")
    sp.add_argument("--info", action="store_true", help="Show size and fragmentation (default).")
    sp.set_defaults(func=cmd_maintenance)

    return p


async def _dispatch(args: argparse.Namespace) -> int:
    try:
        await init_database()
        return await args.func(args)
    except PipelineError as e:
        logger.error(f"{args.cmd} failed: {e}", extra={"error_context": e.to_dict()})
        return 1
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    raise SystemExit(asyncio.run(_dispatch(args)))


if __name__ == "__main__":
    main()
