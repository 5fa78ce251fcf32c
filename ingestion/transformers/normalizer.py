"""
Transform decoded source records into validated inspections and store rows
"""

from typing import Dict, Any, Optional, List
from pydantic import ValidationError
from schemas.inspection import InspectionRecord
from core.exceptions import RecordValidationError
from models.inspection import Inspection, build_search_text, search_key
import logging

logger = logging.getLogger(__name__)

LOCATION_DEFAULTS = {"city": "Unknown", "state": "Unknown"}
PIPE_DEFAULTS = {"material": "Unknown"}


class InspectionNormalizer:
    """
    Validate decoded records and map them onto the store schema.

    Handles:
    - Required field checking at the ingestion boundary
    - Lenient coercion when validation is switched off
    - Flattening nested groups into columns and back
    """

    def __init__(self, validate_data: bool = True):
        self.validate_data = validate_data

    def normalize(self, data: Dict[str, Any], line_number: Optional[int] = None) -> InspectionRecord:
        """
        Turn one decoded record into an ``InspectionRecord``.

        Raises:
            RecordValidationError: required fields are missing or invalid
        """
        payload = data if self.validate_data else self._fill_defaults(data)
        try:
            return InspectionRecord.model_validate(payload)
        except ValidationError as e:
            field_errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise RecordValidationError(
                f"Invalid inspection record {data.get('id')!r}",
                context={
                    "record_id": data.get("id"),
                    "line_number": line_number,
                    "field_errors": field_errors,
                },
                original_exception=e,
            ) from e

    def _fill_defaults(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Supply placeholders for everything except the identifier"""
        payload = dict(data)
        location = payload.get("location") if isinstance(payload.get("location"), dict) else {}
        pipe = payload.get("pipe") if isinstance(payload.get("pipe"), dict) else {}
        payload["location"] = {**LOCATION_DEFAULTS, **{k: v for k, v in location.items() if v not in (None, "")}}
        payload["pipe"] = {**PIPE_DEFAULTS, **{k: v for k, v in pipe.items() if v not in (None, "")}}
        if payload.get("inspection_score") is None:
            payload["inspection_score"] = 0
        if payload.get("requires_repair") is None:
            payload["requires_repair"] = False
        return payload

    @staticmethod
    def to_row(record: InspectionRecord, source_id: Optional[str] = None) -> Dict[str, Any]:
        """Flatten a record into ``inspections`` column values"""
        location = record.location
        pipe = record.pipe
        gps = location.gps
        return {
            "id": record.id,
            "source_id": source_id,
            "timestamp_utc": record.timestamp_utc,
            "inspection_type": record.inspection_type,
            "city": location.city,
            "state": location.state,
            "district": location.district,
            "street": location.street,
            "gps_lat": gps.lat if gps else None,
            "gps_lon": gps.lon if gps else None,
            "upstream_manhole": location.upstream_manhole,
            "downstream_manhole": location.downstream_manhole,
            "material": pipe.material,
            "material_desc": pipe.material_desc,
            "diameter_in": pipe.diameter_in,
            "length_ft": pipe.length_ft,
            "age_years": pipe.age_years,
            "shape": pipe.shape,
            "install_year": pipe.install_year,
            "slope_percent": pipe.slope_percent,
            "inspection_score": record.inspection_score,
            "severity_max": record.severity_max,
            "requires_repair": record.requires_repair,
            "requires_cleaning": record.requires_cleaning,
            "conditions": record.conditions,
            "equipment": record.equipment,
            "observations": record.observations,
            "sensor_data": record.sensor_data,
            "crew": record.crew,
            "tags": record.tags,
            "duration_minutes": record.duration_minutes,
            "video_file": record.video_file,
            "report_generated": record.report_generated,
            "notes": record.notes,
            "qc_reviewed": record.qc_reviewed,
            "city_key": search_key(location.city),
            "state_key": search_key(location.state),
            "material_key": search_key(pipe.material),
            "search_text": build_search_text(InspectionNormalizer.search_fields(record)),
        }

    @staticmethod
    def search_fields(record: InspectionRecord) -> List[Optional[str]]:
        """Values covered by free-text search"""
        return [
            record.location.city,
            record.location.state,
            record.pipe.material,
            record.location.district,
            record.location.street,
            record.notes,
        ]

    @staticmethod
    def to_defect_rows(record: InspectionRecord) -> List[Dict[str, Any]]:
        """Child rows for ``defects``"""
        return [
            {
                "inspection_id": record.id,
                "code": defect.code,
                "description": defect.description,
                "severity": defect.severity,
                "distance_ft": defect.distance_ft,
                "category": defect.category,
                "clock_start": defect.clock_start,
                "clock_end": defect.clock_end,
                "dimensions": defect.dimensions,
                "photo_ref": defect.photo_ref,
                "video_timestamp_sec": defect.video_timestamp_sec,
            }
            for defect in record.defects
        ]

    @staticmethod
    def from_model(inspection: Inspection) -> Dict[str, Any]:
        """Rebuild the nested document shape from a stored row"""
        location: Dict[str, Any] = {
            "city": inspection.city,
            "state": inspection.state,
            "district": inspection.district,
            "street": inspection.street,
            "upstream_manhole": inspection.upstream_manhole,
            "downstream_manhole": inspection.downstream_manhole,
        }
        if inspection.gps_lat is not None and inspection.gps_lon is not None:
            location["gps"] = {"lat": inspection.gps_lat, "lon": inspection.gps_lon}

        document = {
            "id": inspection.id,
            "timestamp_utc": inspection.timestamp_utc,
            "inspection_type": inspection.inspection_type,
            "location": location,
            "pipe": {
                "material": inspection.material,
                "material_desc": inspection.material_desc,
                "diameter_in": inspection.diameter_in,
                "length_ft": inspection.length_ft,
                "age_years": inspection.age_years,
                "shape": inspection.shape,
                "install_year": inspection.install_year,
                "slope_percent": inspection.slope_percent,
            },
            "defects": [
                {
                    "code": d.code,
                    "description": d.description,
                    "severity": d.severity,
                    "distance_ft": d.distance_ft,
                    "category": d.category,
                    "clock_start": d.clock_start,
                    "clock_end": d.clock_end,
                    "dimensions": d.dimensions,
                    "photo_ref": d.photo_ref,
                    "video_timestamp_sec": d.video_timestamp_sec,
                }
                for d in inspection.defects
            ],
            "inspection_score": inspection.inspection_score,
            "severity_max": inspection.severity_max,
            "requires_repair": inspection.requires_repair,
            "requires_cleaning": inspection.requires_cleaning,
            "conditions": inspection.conditions,
            "equipment": inspection.equipment,
            "observations": inspection.observations,
            "sensor_data": inspection.sensor_data,
            "crew": inspection.crew,
            "tags": inspection.tags,
            "duration_minutes": inspection.duration_minutes,
            "video_file": inspection.video_file,
            "report_generated": inspection.report_generated,
            "notes": inspection.notes,
            "qc_reviewed": inspection.qc_reviewed,
        }
        document["location"] = _drop_none(document["location"])
        document["pipe"] = _drop_none(document["pipe"])
        document["defects"] = [_drop_none(d) for d in document["defects"]]
        return _drop_none(document)


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}
