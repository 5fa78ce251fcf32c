"""
Unit tests for record validation and row mapping
"""

import math
import pytest
from core.exceptions import RecordValidationError
from ingestion.transformers.normalizer import InspectionNormalizer
from models.inspection import Defect, Inspection
from schemas.inspection import InspectionRecord
from tests.factories import make_inspection, scenario_record


class TestInspectionNormalizer:
    """Test validation at the ingestion boundary"""

    def test_normalize_valid_record(self):
        normalizer = InspectionNormalizer()

        record = normalizer.normalize(make_inspection(7))

        assert isinstance(record, InspectionRecord)
        assert record.id == "INS-000007"
        assert record.location.city == "Denver"
        assert len(record.defects) == 1

    def test_missing_city_rejected(self):
        data = make_inspection(1)
        del data["location"]["city"]

        with pytest.raises(RecordValidationError) as exc_info:
            InspectionNormalizer().normalize(data, line_number=12)

        context = exc_info.value.context
        assert context["record_id"] == "INS-000001"
        assert context["line_number"] == 12
        assert any(e.startswith("location.city") for e in context["field_errors"])

    def test_blank_material_rejected(self):
        data = make_inspection(1, material="   ")

        with pytest.raises(RecordValidationError):
            InspectionNormalizer().normalize(data)

    def test_non_finite_score_rejected(self):
        data = make_inspection(1, inspection_score=math.nan)

        with pytest.raises(RecordValidationError):
            InspectionNormalizer().normalize(data)

    def test_missing_id_rejected_even_without_validation(self):
        data = make_inspection(1)
        del data["id"]

        with pytest.raises(RecordValidationError):
            InspectionNormalizer(validate_data=False).normalize(data)

    def test_lenient_mode_fills_defaults(self):
        data = {"id": "x-1", "location": {"city": ""}}

        record = InspectionNormalizer(validate_data=False).normalize(data)

        assert record.location.city == "Unknown"
        assert record.location.state == "Unknown"
        assert record.pipe.material == "Unknown"
        assert record.inspection_score == 0
        assert record.requires_repair is False

    def test_null_defects_become_empty(self):
        record = InspectionNormalizer().normalize(make_inspection(1, defects=None))

        assert record.defects == []

    def test_unknown_fields_are_kept(self):
        record = InspectionNormalizer().normalize(make_inspection(1, weather="rain"))

        assert record.to_document()["weather"] == "rain"

    def test_to_row_flattens_groups(self):
        record = InspectionNormalizer().normalize(make_inspection(2))

        row = InspectionNormalizer.to_row(record, "part1.jsonl")

        assert row["id"] == "INS-000002"
        assert row["source_id"] == "part1.jsonl"
        assert row["city"] == "Austin"
        assert row["material"] == "Concrete"
        assert row["gps_lat"] == pytest.approx(29.7602)
        assert row["crew"] == {"lead": "J. Doe", "size": 2}
        assert (row["city_key"], row["state_key"], row["material_key"]) == ("austin", "tx", "concrete")
        assert row["search_text"].split("\x1f")[:3] == ["austin", "tx", "concrete"]

    def test_to_defect_rows(self):
        record = InspectionNormalizer().normalize(make_inspection(2))

        rows = InspectionNormalizer.to_defect_rows(record)

        assert rows == [{
            "inspection_id": "INS-000002",
            "code": "CR",
            "description": "Crack",
            "severity": 3,
            "distance_ft": 42.0,
            "category": None,
            "clock_start": None,
            "clock_end": None,
            "dimensions": None,
            "photo_ref": None,
            "video_timestamp_sec": None,
        }]

    def test_from_model_rebuilds_document(self):
        record = InspectionNormalizer().normalize(scenario_record("a", "Houston", 80, False))
        row = InspectionNormalizer.to_row(record)
        inspection = Inspection(**row)
        inspection.defects = [Defect(inspection_id="a", code="RT", severity=2)]

        document = InspectionNormalizer.from_model(inspection)

        assert document == {
            "id": "a",
            "location": {"city": "Houston", "state": "TX"},
            "pipe": {"material": "PVC"},
            "defects": [{"code": "RT", "severity": 2}],
            "inspection_score": 80,
            "requires_repair": False,
        }

    def test_unreadable_optional_fields_are_set_aside(self):
        data = make_inspection(1, severity_max="n/a")
        data["pipe"]["age_years"] = 12.5
        data["defects"][0]["severity"] = "high"
        data["defects"][0]["dimensions"] = "2x3 in"

        record = InspectionNormalizer().normalize(data)

        assert record.id == "INS-000001"
        assert record.pipe.age_years is None
        assert record.pipe.material == "Clay"
        assert record.defects[0].severity is None
        assert record.defects[0].code == "CR"
        assert record.severity_max is None

        document = record.to_document()
        assert document["pipe"]["unparsed"] == {"age_years": 12.5}
        assert document["defects"][0]["unparsed"] == {"severity": "high", "dimensions": "2x3 in"}
        assert document["unparsed"] == {"severity_max": "n/a"}

    def test_unreadable_gps_is_set_aside(self):
        data = make_inspection(1)
        data["location"]["gps"] = "29.76,-95.36"

        record = InspectionNormalizer().normalize(data)

        assert record.location.gps is None
        assert record.to_document()["location"]["unparsed"] == {"gps": "29.76,-95.36"}
        assert InspectionNormalizer.to_row(record)["gps_lat"] is None

    def test_required_field_still_rejected_next_to_unreadable_optional(self):
        data = make_inspection(1)
        data["pipe"]["age_years"] = "old"
        data["requires_repair"] = "sometimes"

        with pytest.raises(RecordValidationError) as exc_info:
            InspectionNormalizer().normalize(data)

        field_errors = exc_info.value.context["field_errors"]
        assert any(e.startswith("requires_repair") for e in field_errors)
