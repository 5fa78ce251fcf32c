"""
Unit tests for log formatting
"""

import json
import logging
from core.exceptions import RecordParseError
from core.logging import ContextTextFormatter, JsonLineFormatter, TEXT_FORMAT


def make_record(error=None):
    record = logging.LogRecord(
        name="ingestion.runner", level=logging.WARNING, pathname=__file__, lineno=1,
        msg="Dropping malformed record", args=(), exc_info=None,
    )
    if error is not None:
        record.error_context = error.to_dict()
    return record


class TestFormatters:
    """Test rendering of structured error context"""

    def test_text_appends_error_context(self):
        error = RecordParseError("bad line", context={"source_id": "part1.jsonl", "line_number": 7})

        line = ContextTextFormatter(TEXT_FORMAT).format(make_record(error))

        assert line.endswith("| RecordParseError [source_id=part1.jsonl, line_number=7]")
        assert "error_timestamp" not in line

    def test_text_without_context(self):
        line = ContextTextFormatter(TEXT_FORMAT).format(make_record())

        assert line.endswith("| ingestion.runner | Dropping malformed record")

    def test_json_line(self):
        error = RecordParseError("bad line", context={"source_id": "part1.jsonl"})

        entry = json.loads(JsonLineFormatter().format(make_record(error)))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "ingestion.runner"
        assert entry["error_context"]["error_type"] == "RecordParseError"
        assert entry["error_context"]["context"]["source_id"] == "part1.jsonl"
