from typing import Iterable, Optional

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text, JSON,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship
from models.base import Base, utcnow

# Joins the fields of search_text; a search term never spans two fields
SEARCH_TEXT_SEPARATOR = "\x1f"


def search_key(value: Optional[str]) -> Optional[str]:
    """Case-insensitive comparison key (Unicode casefold)"""
    if value is None:
        return None
    return value.casefold()


def build_search_text(values: Iterable[Optional[str]]) -> str:
    return SEARCH_TEXT_SEPARATOR.join(search_key(v) for v in values if v)


def _key_default(column_name: str):
    def default(context):
        return search_key(context.get_current_parameters().get(column_name))
    return default


def _search_text_default(context) -> str:
    params = context.get_current_parameters()
    return build_search_text(
        params.get(name) for name in ("city", "state", "material", "district", "street", "notes")
    )


class Inspection(Base):
    """
    One sewer pipe inspection.

    Filterable scalars (city, state, material, score, repair flag) are real
    indexed columns; the nested groups the search never filters on are kept
    as JSON and returned as-is.

    city_key, state_key and material_key hold the casefolded values the
    filters compare against, and search_text the casefolded city, state,
    material, district, street and notes for free-text search.

    Field Mapping:
    - location.{city,state,district,street} -> city, state, district, street
    - location.gps.{lat,lon} -> gps_lat, gps_lon
    - location.{upstream,downstream}_manhole -> upstream_manhole, downstream_manhole
    - pipe.* -> material, material_desc, diameter_in, length_ft, age_years,
      shape, install_year, slope_percent
    - conditions, equipment, observations, sensor_data, crew, tags -> JSON
    """
    __tablename__ = "inspections"

    id = Column(String(255), primary_key=True)
    source_id = Column(String(255), nullable=True)

    timestamp_utc = Column(String(64), nullable=True)
    inspection_type = Column(String(100), nullable=True)

    # Location
    city = Column(String(200), nullable=False)
    state = Column(String(50), nullable=False)
    district = Column(String(200), nullable=True)
    street = Column(String(500), nullable=True)
    gps_lat = Column(Float, nullable=True)
    gps_lon = Column(Float, nullable=True)
    upstream_manhole = Column(String(100), nullable=True)
    downstream_manhole = Column(String(100), nullable=True)

    # Pipe
    material = Column(String(100), nullable=False)
    material_desc = Column(String(500), nullable=True)
    diameter_in = Column(Float, nullable=True)
    length_ft = Column(Float, nullable=True)
    age_years = Column(Integer, nullable=True)
    shape = Column(String(100), nullable=True)
    install_year = Column(Integer, nullable=True)
    slope_percent = Column(Float, nullable=True)

    # Assessment
    inspection_score = Column(Float, nullable=False)
    severity_max = Column(Integer, nullable=True)
    requires_repair = Column(Boolean, nullable=False)
    requires_cleaning = Column(Boolean, nullable=True)

    # Opaque nested groups
    conditions = Column(JSON, nullable=True)
    equipment = Column(JSON, nullable=True)
    observations = Column(JSON, nullable=True)
    sensor_data = Column(JSON, nullable=True)
    crew = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=True)

    # Misc
    duration_minutes = Column(Integer, nullable=True)
    video_file = Column(String(500), nullable=True)
    report_generated = Column(Boolean, nullable=True)
    notes = Column(Text, nullable=True)
    qc_reviewed = Column(Boolean, nullable=True)

    # Search keys
    city_key = Column(String(200), nullable=False, default=_key_default("city"))
    state_key = Column(String(50), nullable=False, default=_key_default("state"))
    material_key = Column(String(100), nullable=False, default=_key_default("material"))
    search_text = Column(Text, nullable=False, default=_search_text_default)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    defects = relationship(
        "Defect",
        back_populates="inspection",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Defect.id",
    )

    __table_args__ = (
        Index("idx_inspections_city", "city_key"),
        Index("idx_inspections_state", "state_key"),
        Index("idx_inspections_material", "material_key"),
        Index("idx_inspections_score", "inspection_score"),
        Index("idx_inspections_repair", "requires_repair"),
        Index("idx_inspections_timestamp", "timestamp_utc"),
        Index("idx_inspections_age", "age_years"),
        Index("idx_inspections_diameter", "diameter_in"),
        Index("idx_inspections_city_state", "city_key", "state_key"),
        Index("idx_inspections_city_repair_score", "city_key", "requires_repair", "inspection_score"),
        Index("idx_inspections_material_score", "material_key", "inspection_score"),
    )

    def __repr__(self):
        return f"<Inspection(id='{self.id}', city='{self.city}', score={self.inspection_score})>"


class Defect(Base):
    """A defect observed during an inspection. Deleted with its parent."""
    __tablename__ = "defects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspection_id = Column(
        String(255),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
    )

    code = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    severity = Column(Integer, nullable=True)
    distance_ft = Column(Float, nullable=True)
    category = Column(String(100), nullable=True)
    clock_start = Column(Integer, nullable=True)
    clock_end = Column(Integer, nullable=True)
    dimensions = Column(JSON, nullable=True)
    photo_ref = Column(String(500), nullable=True)
    video_timestamp_sec = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    inspection = relationship("Inspection", back_populates="defects")

    __table_args__ = (
        Index("idx_defects_inspection", "inspection_id"),
        Index("idx_defects_code", "code"),
        Index("idx_defects_severity", "severity"),
    )

    def __repr__(self):
        return f"<Defect(inspection_id='{self.inspection_id}', code='{self.code}')>"
