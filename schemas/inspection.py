"""
Pydantic schemas for decoded inspection records.

A decoded source line is validated into ``InspectionRecord`` at the
ingestion boundary. Only the filterable scalars are required; every other
group is optional and carried through unchanged. An optional value that
cannot be read as its declared type is set to None and its raw value kept
under ``unparsed``.
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

UNPARSED_KEY = "unparsed"


class OpaqueRecord(BaseModel):
    """Base for record groups whose optional fields are carried opaquely"""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    @model_validator(mode="wrap")
    @classmethod
    def set_aside_unparseable(cls, data, handler):
        try:
            return handler(data)
        except ValidationError as e:
            if not isinstance(data, dict):
                raise
            optional = {
                name for name, field in cls.model_fields.items()
                if not field.is_required()
            }
            bad = {
                err["loc"][0] for err in e.errors()
                if err["loc"] and err["loc"][0] in optional
            }
            if not bad:
                raise
            retry = {k: v for k, v in data.items() if k not in bad}
            unparsed = data.get(UNPARSED_KEY)
            retry[UNPARSED_KEY] = {
                **(unparsed if isinstance(unparsed, dict) else {}),
                **{name: data[name] for name in bad},
            }
            return handler(retry)


class GPSCoordinates(OpaqueRecord):
    lat: Optional[float] = None
    lon: Optional[float] = None


class Location(OpaqueRecord):
    """Where the inspected segment is."""

    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    district: Optional[str] = None
    street: Optional[str] = None
    gps: Optional[GPSCoordinates] = None
    upstream_manhole: Optional[str] = None
    downstream_manhole: Optional[str] = None

    @field_validator("city", "state")
    @classmethod
    def strip_required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class PipeDetails(OpaqueRecord):
    """Physical description of the pipe."""

    material: str = Field(..., min_length=1)
    material_desc: Optional[str] = None
    diameter_in: Optional[float] = None
    length_ft: Optional[float] = None
    age_years: Optional[int] = None
    shape: Optional[str] = None
    install_year: Optional[int] = None
    slope_percent: Optional[float] = None

    @field_validator("material")
    @classmethod
    def strip_material(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class DefectRecord(OpaqueRecord):
    """A single defect observed along the pipe."""

    code: Optional[str] = None
    description: Optional[str] = None
    severity: Optional[int] = None
    distance_ft: Optional[float] = None
    category: Optional[str] = None
    clock_start: Optional[int] = None
    clock_end: Optional[int] = None
    dimensions: Optional[Dict[str, Any]] = None
    photo_ref: Optional[str] = None
    video_timestamp_sec: Optional[float] = None


class InspectionRecord(OpaqueRecord):
    """
    One sewer inspection as it appears in a source line.

    Required: id, location.city, location.state, pipe.material,
    inspection_score, requires_repair.
    """

    id: str = Field(..., min_length=1)
    timestamp_utc: Optional[str] = None
    inspection_type: Optional[str] = None

    location: Location
    pipe: PipeDetails
    defects: List[DefectRecord] = Field(default_factory=list)

    inspection_score: float
    severity_max: Optional[int] = None
    requires_repair: bool
    requires_cleaning: Optional[bool] = None

    # Opaque groups
    conditions: Optional[Any] = None
    equipment: Optional[Any] = None
    observations: Optional[Any] = None
    sensor_data: Optional[Any] = None
    crew: Optional[Any] = None
    tags: Optional[Any] = None

    duration_minutes: Optional[int] = None
    video_file: Optional[str] = None
    report_generated: Optional[bool] = None
    notes: Optional[str] = None
    qc_reviewed: Optional[bool] = None

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id must not be blank")
        return v

    @field_validator("inspection_score")
    @classmethod
    def finite_score(cls, v: float) -> float:
        if math.isnan(v) or math.isinf(v):
            raise ValueError("inspection_score must be a finite number")
        return v

    @field_validator("defects", mode="before")
    @classmethod
    def defects_list(cls, v):
        """Treat a missing or null defect list as empty"""
        if v is None:
            return []
        return v

    def to_document(self) -> Dict[str, Any]:
        """Serializable form returned to search callers."""
        return self.model_dump(mode="json", exclude_none=True)
