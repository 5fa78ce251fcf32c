"""
Core utilities and configuration for the sewer inspection backend.

This package provides foundational components used by the importer, the
search engine and the API:

Modules:
    config: Application configuration and environment variable management
    database: SQLite engine, pragmas and session management
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities
    maintenance: Store validation, VACUUM/ANALYZE and size information

Usage:
    from core.config import settings
    from core.database import get_session_maker, init_database
    from core.exceptions import SourceFetchError, SearchError
    from core.logging import setup_logging

Example:
    # Initialize logging and schema
    setup_logging()
    await init_database()

    # Get database session
    async with get_session_maker()() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "get_session_maker",
    "init_database",
    "setup_logging",
    # Exceptions
    "PipelineError",
    "ExtractionError",
    "SourceFetchError",
    "RecordParseError",
    "TransformationError",
    "RecordValidationError",
    "LoadError",
    "BatchWriteError",
    "StoreUnavailableError",
    "ImportRunError",
    "ImportConflictError",
    "ResumeUnavailableError",
    "SearchError",
    "UnsupportedQueryError",
]
