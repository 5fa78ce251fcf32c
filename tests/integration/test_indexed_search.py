"""
Integration tests for searching the structured store
"""

import pytest
from pydantic import ValidationError
from core.exceptions import UnsupportedQueryError
from ingestion.runner import BatchImporter
from schemas.search import SearchFilter
from search.engine import SearchEngine
from search.indexed import IndexedSearchBackend
from search.streaming import StreamingSearchBackend
from tests.factories import make_inspection, scenario_record

SOURCE = "part1.jsonl"


async def import_records(source_server, decoder, session_maker, records):
    source_server.add(SOURCE, records)
    progress = await BatchImporter(session_maker, decoder).import_source(SOURCE)
    assert progress.records_imported == len(records)


class TestIndexedSearch:
    """Test exact, ordered pages from the store"""

    @pytest.mark.asyncio
    async def test_pages_partition_the_result_set(self, source_server, decoder, session_maker):
        # Few distinct timestamps so ordering relies on the id tie-break
        records = [
            make_inspection(i, timestamp_utc=f"2024-03-0{i % 3 + 1}T00:00:00Z")
            for i in range(1, 24)
        ]
        await import_records(source_server, decoder, session_maker, records)
        backend = IndexedSearchBackend(session_maker)

        full = await backend.search(SearchFilter(page_size=100))
        ordered = [r["id"] for r in full.results]

        pages = []
        for page in range(1, 6):
            result = await backend.search(SearchFilter(page=page, page_size=5))
            ids = [r["id"] for r in result.results]
            assert ids == ordered[(page - 1) * 5:page * 5]
            pages.extend(ids)

        assert full.total_count == 23
        assert len(pages) == len(set(pages)) == 23
        last = await backend.search(SearchFilter(page=5, page_size=5))
        assert len(last.results) == 3
        assert last.has_next is False

    @pytest.mark.asyncio
    async def test_newest_first(self, source_server, decoder, session_maker):
        records = [
            make_inspection(1, timestamp_utc="2024-01-01T00:00:00Z"),
            make_inspection(2, timestamp_utc="2024-06-01T00:00:00Z"),
            make_inspection(3, timestamp_utc="2024-03-01T00:00:00Z"),
        ]
        await import_records(source_server, decoder, session_maker, records)

        result = await IndexedSearchBackend(session_maker).search(SearchFilter())

        assert [r["id"] for r in result.results] == ["INS-000002", "INS-000003", "INS-000001"]

    @pytest.mark.asyncio
    async def test_filters_are_case_insensitive(self, source_server, decoder, session_maker):
        await import_records(source_server, decoder, session_maker, [
            scenario_record("a", "Houston", 80, False, state="TX", material="Vitrified Clay"),
            scenario_record("b", "Dallas", 40, True, state="TX", material="PVC"),
        ])
        backend = IndexedSearchBackend(session_maker)

        by_city = await backend.search(SearchFilter(city="houston"))
        by_state = await backend.search(SearchFilter(state="tx"))
        by_material = await backend.search(SearchFilter(material="CLAY"))

        assert [r["id"] for r in by_city.results] == ["a"]
        assert by_state.total_count == 2
        assert [r["id"] for r in by_material.results] == ["a"]

    @pytest.mark.asyncio
    async def test_combined_filters(self, source_server, decoder, session_maker):
        await import_records(source_server, decoder, session_maker, [
            scenario_record("a", "Houston", 80, True),
            scenario_record("b", "Houston", 45, True),
            scenario_record("c", "Houston", 95, False),
            scenario_record("d", "Austin", 85, True),
        ])

        result = await IndexedSearchBackend(session_maker).search(
            SearchFilter(city="hou", score_min=50, score_max=95, requires_repair=True)
        )

        assert [r["id"] for r in result.results] == ["a"]
        assert result.total_count == 1
        assert result.total_is_estimate is False

    @pytest.mark.asyncio
    async def test_like_wildcards_match_literally(self, source_server, decoder, session_maker):
        await import_records(source_server, decoder, session_maker, [
            scenario_record("a", "Houston", 80, False),
        ])

        result = await IndexedSearchBackend(session_maker).search(SearchFilter(city="%"))

        assert result.total_count == 0

    @pytest.mark.asyncio
    async def test_document_round_trip(self, source_server, decoder, session_maker):
        record = make_inspection(5)
        await import_records(source_server, decoder, session_maker, [record])

        result = await IndexedSearchBackend(session_maker).search(SearchFilter())
        document = result.results[0]

        assert document["location"]["city"] == record["location"]["city"]
        assert document["location"]["gps"] == record["location"]["gps"]
        assert document["pipe"]["material"] == record["pipe"]["material"]
        assert document["defects"][0]["code"] == "CR"
        assert document["crew"] == record["crew"]


class TestBothBackends:
    """The same query against the store and against the source"""

    @pytest.mark.asyncio
    async def test_scenario_a(self, source_server, decoder, session_maker):
        await import_records(source_server, decoder, session_maker, [
            scenario_record("a", "Houston", 80, False),
        ])
        engines = [
            SearchEngine(indexed=IndexedSearchBackend(session_maker), mode="indexed"),
            SearchEngine(streaming=StreamingSearchBackend(decoder, source_ids=[SOURCE]), mode="streaming"),
        ]

        for engine in engines:
            found = await engine.search(SearchFilter(city="houston"))
            empty = await engine.search(SearchFilter(score_min=90))

            assert [r["id"] for r in found.results] == ["a"]
            assert found.total_count == 1
            assert empty.results == []
            assert empty.total_count == 0

    @pytest.mark.asyncio
    async def test_fallback_to_streaming_when_store_broken(self, source_server, decoder, session_maker, test_engine):
        source_server.add(SOURCE, [scenario_record("a", "Houston", 80, False)])
        async with test_engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE defects")
            await conn.exec_driver_sql("DROP TABLE inspections")

        engine = SearchEngine(
            indexed=IndexedSearchBackend(session_maker),
            streaming=StreamingSearchBackend(decoder, source_ids=[SOURCE]),
            mode="auto",
        )
        result = await engine.search(SearchFilter(city="houston"))

        assert result.backend == "streaming"
        assert [r["id"] for r in result.results] == ["a"]

    @pytest.mark.asyncio
    async def test_non_ascii_case_folding_agrees(self, source_server, decoder, session_maker):
        await import_records(source_server, decoder, session_maker, [
            scenario_record("z", "Zürich", 70, False, state="ÉT", material="Steinzeug"),
            scenario_record("s", "Straße", 60, True, state="TX", material="PVC"),
            scenario_record("h", "Houston", 80, False),
        ])
        engines = [
            SearchEngine(indexed=IndexedSearchBackend(session_maker), mode="indexed"),
            SearchEngine(streaming=StreamingSearchBackend(decoder, source_ids=[SOURCE]), mode="streaming"),
        ]

        for engine in engines:
            by_city = await engine.search(SearchFilter(city="ZÜRICH"))
            by_state = await engine.search(SearchFilter(state="ét"))
            by_folded = await engine.search(SearchFilter(city="STRASSE"))
            by_text = await engine.search(SearchFilter(text="züRICH"))

            assert [r["id"] for r in by_city.results] == ["z"], engine.mode
            assert [r["id"] for r in by_state.results] == ["z"], engine.mode
            assert [r["id"] for r in by_folded.results] == ["s"], engine.mode
            assert [r["id"] for r in by_text.results] == ["z"], engine.mode

    @pytest.mark.asyncio
    async def test_advanced_filters_agree(self, source_server, decoder, session_maker):
        records = [
            make_inspection(1, timestamp_utc="2024-01-10T08:00:00Z", notes="Root intrusion near joint",
                            defects=[{"code": "RT", "severity": 4}]),
            make_inspection(2, timestamp_utc="2024-02-10T08:00:00+02:00",
                            defects=[{"code": "CR", "severity": 2}]),
            make_inspection(3, timestamp_utc="2024-03-10T08:00:00Z", defects=[]),
            make_inspection(4, timestamp_utc="not a date"),
        ]
        records[0]["pipe"].update(age_years=45, diameter_in=8)
        records[1]["pipe"].update(age_years=12, diameter_in=24)
        records[2]["pipe"].update(age_years=30, diameter_in=12)
        await import_records(source_server, decoder, session_maker, records)
        indexed = IndexedSearchBackend(session_maker)
        streaming = StreamingSearchBackend(decoder, source_ids=[SOURCE])

        cases = {
            "age": (SearchFilter(age_min=30, age_max=45), {"INS-000001", "INS-000003"}),
            "diameter": (SearchFilter(diameter_min=10), {"INS-000002", "INS-000003", "INS-000004"}),
            "date_range": (
                SearchFilter(date_from="2024-02-10T06:00:00Z", date_to="2024-03-10T08:00:00Z"),
                {"INS-000002", "INS-000003"},
            ),
            "severity": (SearchFilter(defect_severity_min=3), {"INS-000001", "INS-000004"}),
            "text": (SearchFilter(text="ROOT intrusion"), {"INS-000001"}),
        }
        for name, (filters, expected) in cases.items():
            from_store = await indexed.search(filters)
            from_source = await streaming.search(filters)

            assert {r["id"] for r in from_store.results} == expected, name
            assert {r["id"] for r in from_source.results} == expected, name
            assert from_store.total_count == from_source.total_count == len(expected), name

    @pytest.mark.asyncio
    async def test_fallback_rejects_sort_but_serves_full_text(self, source_server, decoder, session_maker, test_engine):
        source_server.add(SOURCE, [
            scenario_record("a", "Houston", 60, False),
            scenario_record("b", "Houston", 90, False),
        ])
        async with test_engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE defects")
            await conn.exec_driver_sql("DROP TABLE inspections")

        engine = SearchEngine(
            indexed=IndexedSearchBackend(session_maker),
            streaming=StreamingSearchBackend(decoder, source_ids=[SOURCE]),
            mode="auto",
        )
        with pytest.raises(UnsupportedQueryError):
            await engine.search(SearchFilter(sort_by="inspection_score"))

        result = await engine.full_text_search("houston")
        assert result.backend == "streaming"
        assert [r["id"] for r in result.results] == ["a", "b"]


class TestSortingAndFullText:
    """Test sort options and free-text search on the store"""

    @pytest.mark.asyncio
    async def test_sort_by_whitelisted_column(self, source_server, decoder, session_maker):
        await import_records(source_server, decoder, session_maker, [
            scenario_record("a", "Houston", 60, False),
            scenario_record("b", "Dallas", 90, False),
            scenario_record("c", "Austin", 75, False),
        ])
        backend = IndexedSearchBackend(session_maker)

        by_score = await backend.search(SearchFilter(sort_by="inspection_score", sort_order="asc"))
        by_city = await backend.search(SearchFilter(sort_by="city", sort_order="desc"))

        assert [r["id"] for r in by_score.results] == ["a", "c", "b"]
        assert [r["id"] for r in by_city.results] == ["a", "b", "c"]

    def test_unknown_sort_column_rejected(self):
        with pytest.raises(ValidationError):
            SearchFilter(sort_by="notes; DROP TABLE inspections")

    @pytest.mark.asyncio
    async def test_full_text_search_orders_by_score(self, source_server, decoder, session_maker):
        low = scenario_record("low", "Houston", 40, True)
        high = scenario_record("high", "Dallas", 95, False)
        high["notes"] = "Houston crew on loan"
        other = scenario_record("other", "Austin", 99, False)
        await import_records(source_server, decoder, session_maker, [low, high, other])
        engine = SearchEngine(indexed=IndexedSearchBackend(session_maker), mode="indexed")

        result = await engine.full_text_search("HOUSTON")

        assert [r["id"] for r in result.results] == ["high", "low"]
        assert result.total_count == 2

    @pytest.mark.asyncio
    async def test_blank_full_text_term_rejected(self, session_maker):
        engine = SearchEngine(indexed=IndexedSearchBackend(session_maker), mode="indexed")

        with pytest.raises(ValueError):
            await engine.full_text_search("   ")
