"""
Unit tests for the SQLite inspection loader
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError
from ingestion.loaders.sqlite_loader import InspectionLoader
from schemas.inspection import InspectionRecord
from tests.factories import make_inspection, scenario_record


def make_session(**execute_kwargs):
    mock_session = AsyncMock()
    mock_session.execute = AsyncMock(**execute_kwargs)
    mock_session.begin_nested = MagicMock()
    return mock_session


class TestInspectionLoader:
    """Test SQLite loader functionality"""

    @pytest.mark.asyncio
    async def test_load_single_record(self):
        """Upsert, defect cleanup and defect insert for one record"""
        mock_session = make_session()
        loader = InspectionLoader(mock_session)
        record = InspectionRecord.model_validate(make_inspection(1))

        loaded, failed = await loader.load([record], "part1.jsonl")

        assert loaded == 1
        assert failed == []
        assert mock_session.execute.call_count == 3
        assert mock_session.begin_nested.call_count == 1
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_load_without_defects(self):
        mock_session = make_session()
        loader = InspectionLoader(mock_session)
        records = [
            InspectionRecord.model_validate(scenario_record(f"r{i}", "Austin", 70, False))
            for i in range(4)
        ]

        loaded, failed = await loader.load(records)

        assert loaded == 4
        # Upsert plus defect cleanup per record
        assert mock_session.execute.call_count == 8

    @pytest.mark.asyncio
    async def test_load_empty_list(self):
        """Test loading empty list"""
        mock_session = make_session()
        loader = InspectionLoader(mock_session)

        result = await loader.load([])

        assert result == (0, [])
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_record_does_not_void_batch(self):
        error = OperationalError("INSERT INTO inspections", {}, Exception("disk I/O error"))
        mock_session = make_session(side_effect=[error, None, None])
        loader = InspectionLoader(mock_session)
        first = InspectionRecord.model_validate(scenario_record("bad", "Austin", 70, False))
        second = InspectionRecord.model_validate(scenario_record("good", "Austin", 70, False))

        loaded, failed = await loader.load([first, second])

        assert loaded == 1
        assert [record.id for record, _ in failed] == ["bad"]
        assert failed[0][1] is error

    @pytest.mark.asyncio
    async def test_existing_ids_are_looked_up_in_chunks(self):
        result = MagicMock()
        result.scalars.return_value.all.return_value = ["id-1"]
        mock_session = make_session(return_value=result)
        loader = InspectionLoader(mock_session)

        found = await loader.existing_ids(f"id-{i}" for i in range(1200))

        assert found == {"id-1"}
        assert mock_session.execute.call_count == 3
