"""
Custom exceptions for the inspection pipeline with structured error context.

Every exception carries a message, a context dictionary and (optionally) the
original exception that triggered it, so failures can be logged and stored
on the import ledger without losing detail.

Exception Hierarchy:
    PipelineError (base)
    ├── ExtractionError
    │   ├── SourceFetchError
    │   └── RecordParseError
    ├── TransformationError
    │   └── RecordValidationError
    ├── LoadError
    │   ├── BatchWriteError
    │   └── StoreUnavailableError
    ├── ImportRunError
    │   ├── ImportConflictError
    │   └── ResumeUnavailableError
    └── SearchError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class PipelineError(Exception):
    """
    Base exception for all pipeline-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, line, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(PipelineError):
    """Base exception for reading the remote source."""
    pass


class SourceFetchError(ExtractionError):
    """
    Raised when the remote source cannot be reached or answers with an
    error status. Fatal to the decode call that raised it.

    Context should include:
        - source_id: The source being read
        - url: Resolved URL
        - status_code: HTTP status code (if applicable)
    """
    pass


class RecordParseError(ExtractionError):
    """
    A single line could not be decoded as JSON (or overflowed the buffer).

    Context should include:
        - source_id: The source being read
        - line_number: 1-based position among non-blank lines
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(PipelineError):
    """Base exception for record transformation failures."""
    pass


class RecordValidationError(TransformationError):
    """
    A decoded record is missing required fields or has invalid values.

    Context should include:
        - record_id: The record id, when present
        - field_errors: List of field-level problems
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(PipelineError):
    """Base exception for store write/read failures."""
    pass


class BatchWriteError(LoadError):
    """
    The transaction for one batch could not be committed. The batch's
    records are counted as errors and the run continues.

    Context should include:
        - source_id: Source being imported
        - batch_size: Number of records in the failed batch
    """
    pass


class StoreUnavailableError(LoadError):
    """The structured store cannot be opened or queried."""
    pass


# ============================================================================
# Import Run Errors
# ============================================================================

class ImportRunError(PipelineError):
    """Base exception for import lifecycle problems."""
    pass


class ImportConflictError(ImportRunError):
    """An import was requested while another one is running."""
    pass


class ResumeUnavailableError(ImportRunError):
    """Resume was requested but the source has no incomplete checkpoint."""
    pass


# ============================================================================
# Search Errors
# ============================================================================

class SearchError(PipelineError):
    """
    A search could not be served. No partial page is returned.

    Context should include:
        - backend: indexed or streaming
        - filters: The applied filters
    """
    pass


class UnsupportedQueryError(SearchError):
    """
    The backend cannot answer this query as asked (e.g. a sort order the
    streaming scan cannot produce).

    Context should include:
        - backend: The backend that rejected the query
        - option: The offending filter option
    """
    pass
