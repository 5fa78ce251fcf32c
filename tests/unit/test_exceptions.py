"""
Unit tests for the exception hierarchy
"""

from core.exceptions import (
    BatchWriteError,
    ExtractionError,
    ImportConflictError,
    ImportRunError,
    LoadError,
    PipelineError,
    RecordParseError,
    RecordValidationError,
    ResumeUnavailableError,
    SearchError,
    SourceFetchError,
    StoreUnavailableError,
    TransformationError,
)


class TestPipelineError:
    """Test structured error context"""

    def test_context_and_cause(self):
        cause = ValueError("bad byte")
        error = RecordParseError(
            "Dropping malformed record",
            context={"source_id": "part1.jsonl", "line_number": 4},
            original_exception=cause,
        )

        assert error.__cause__ is cause
        assert "line_number=4" in str(error)
        assert "Caused by: ValueError: bad byte" in str(error)

    def test_to_dict(self):
        error = SearchError("Streaming search failed", context={"backend": "streaming"})

        data = error.to_dict()

        assert data["error_type"] == "SearchError"
        assert data["message"] == "Streaming search failed"
        assert data["context"]["backend"] == "streaming"
        assert "error_timestamp" in data["context"]
        assert data["original_error"] is None

    def test_hierarchy(self):
        assert issubclass(SourceFetchError, ExtractionError)
        assert issubclass(RecordParseError, ExtractionError)
        assert issubclass(RecordValidationError, TransformationError)
        assert issubclass(BatchWriteError, LoadError)
        assert issubclass(StoreUnavailableError, LoadError)
        assert issubclass(ImportConflictError, ImportRunError)
        assert issubclass(ResumeUnavailableError, ImportRunError)
        for cls in (ExtractionError, TransformationError, LoadError, ImportRunError, SearchError):
            assert issubclass(cls, PipelineError)
