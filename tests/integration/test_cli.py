"""
Tests for the operator CLI, run end to end against a temporary store
"""

import argparse
import httpx
import pytest
from unittest.mock import MagicMock
from core.config import settings
from ingestion.extractors.source_stream import StreamingDecoder
from scripts import db_import
from tests.factories import SOURCE_BASE_URL, make_inspections

SOURCE = "part1.jsonl"


@pytest.fixture
def cli(tmp_path, monkeypatch, source_server):
    """Point the CLI at a temporary store and the in-memory source host"""
    monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setattr(db_import, "setup_logging", MagicMock())

    def make_decoder():
        client = httpx.AsyncClient(transport=httpx.MockTransport(source_server.handler))
        return StreamingDecoder(base_url=SOURCE_BASE_URL, client=client)

    monkeypatch.setattr(db_import, "StreamingDecoder", make_decoder)

    def run(*argv):
        with pytest.raises(SystemExit) as exc_info:
            db_import.main(list(argv))
        return exc_info.value.code

    return run


class TestImportCommands:
    """Test import, resume and history commands"""

    def test_import_one_source(self, cli, source_server, capsys):
        source_server.add(SOURCE, make_inspections(7))

        code = cli("import", "--source", SOURCE, "--batch-size", "3", "--chunk-size", "5")

        out = capsys.readouterr().out
        assert code == 0
        assert "Imported 7 records from 1 source(s)" in out
        assert "processed=3 imported=3" in out

        assert cli("stats") == 0
        assert "Inspections: 7" in capsys.readouterr().out

    def test_failed_import_exits_nonzero(self, cli, source_server, capsys):
        source_server.statuses[SOURCE] = 500

        code = cli("import", "--source", SOURCE)

        assert code == 1
        assert f"{SOURCE} failed" in capsys.readouterr().out

    def test_resume_list_when_nothing_to_resume(self, cli, capsys):
        code = cli("resume", "--list")

        assert code == 0
        assert "No resumable imports" in capsys.readouterr().out

    def test_resume_list_shows_failed_run(self, cli, source_server, capsys):
        source_server.statuses[SOURCE] = 500
        cli("import", "--source", SOURCE)
        capsys.readouterr()

        code = cli("resume", "--list")

        out = capsys.readouterr().out
        assert code == 0
        assert SOURCE in out
        assert "failed" in out

    def test_resume_without_checkpoint(self, cli, capsys):
        code = cli("resume", "--source", SOURCE)

        assert code == 1
        assert "Cannot start import" in capsys.readouterr().out

    def test_history_empty(self, cli, capsys):
        assert cli("history", "--limit", "5") == 0
        assert "No import history" in capsys.readouterr().out


class TestArguments:
    """Test argument validation before anything runs"""

    @pytest.mark.parametrize("argv", [
        ["import", "--batch-size", "-5"],
        ["import", "--batch-size", "0"],
        ["import", "--chunk-size", "-1"],
        ["import", "--chunk-size", "ten"],
        ["history", "--limit", "0"],
    ])
    def test_invalid_sizes_exit_with_usage_error(self, cli, source_server, argv, capsys):
        assert cli(*argv) == 2
        err = capsys.readouterr().err
        assert "must be at least 1" in err or "not an integer" in err
        assert source_server.requests == []

    def test_resume_options_are_exclusive(self, cli):
        assert cli("resume", "--source", SOURCE, "--list") == 2

    def test_positive_int(self):
        assert db_import.positive_int("3") == 3
        with pytest.raises(argparse.ArgumentTypeError):
            db_import.positive_int("-3")
