"""
Filter semantics shared by both search backends.

``build_conditions`` expresses a SearchFilter over the indexed columns;
``matches`` applies the same rules to a decoded record in Python. Text
comparisons on both sides go through ``search_key`` (casefold), stored for
the indexed backend in the ``*_key`` and ``search_text`` columns.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, exists, func
from sqlalchemy.sql.elements import ColumnElement

from ingestion.transformers.normalizer import InspectionNormalizer
from models.inspection import Defect, Inspection, build_search_text, search_key
from schemas.inspection import InspectionRecord
from schemas.search import SearchFilter

LIKE_ESCAPE = "\\"
SQLITE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _contains(column, value: str) -> ColumnElement:
    return column.like(f"%{_escape_like(search_key(value))}%", escape=LIKE_ESCAPE)


def _between(column, low, high) -> List[ColumnElement]:
    conditions = []
    if low is not None:
        conditions.append(column >= low)
    if high is not None:
        conditions.append(column <= high)
    return conditions


def build_conditions(filters: SearchFilter) -> List[ColumnElement]:
    """WHERE clauses for the inspections table"""
    conditions: List[ColumnElement] = []

    if filters.city:
        conditions.append(_contains(Inspection.city_key, filters.city))
    if filters.state:
        conditions.append(Inspection.state_key == search_key(filters.state))
    if filters.material:
        conditions.append(_contains(Inspection.material_key, filters.material))
    conditions += _between(Inspection.inspection_score, filters.score_min, filters.score_max)
    if filters.requires_repair is not None:
        conditions.append(Inspection.requires_repair == filters.requires_repair)

    conditions += _between(Inspection.age_years, filters.age_min, filters.age_max)
    conditions += _between(Inspection.diameter_in, filters.diameter_min, filters.diameter_max)
    if filters.date_from is not None or filters.date_to is not None:
        # datetime() normalizes ISO-8601 text with a zone suffix to UTC, NULL when unreadable
        conditions += _between(
            func.datetime(Inspection.timestamp_utc),
            filters.date_from.strftime(SQLITE_DATETIME_FORMAT) if filters.date_from else None,
            filters.date_to.strftime(SQLITE_DATETIME_FORMAT) if filters.date_to else None,
        )
    if filters.defect_severity_min is not None:
        conditions.append(exists().where(and_(
            Defect.inspection_id == Inspection.id,
            Defect.severity >= filters.defect_severity_min,
        )))
    if filters.text:
        conditions.append(_contains(Inspection.search_text, filters.text))

    return conditions


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 text as naive UTC whole seconds; None when unreadable"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.replace(microsecond=0)


def _within(value, low, high) -> bool:
    if low is None and high is None:
        return True
    if value is None:
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def matches(record: InspectionRecord, filters: SearchFilter) -> bool:
    """True when ``record`` satisfies every constraint of ``filters``"""
    if filters.city and search_key(filters.city) not in search_key(record.location.city):
        return False
    if filters.state and search_key(filters.state) != search_key(record.location.state):
        return False
    if filters.material and search_key(filters.material) not in search_key(record.pipe.material):
        return False
    if not _within(record.inspection_score, filters.score_min, filters.score_max):
        return False
    if filters.requires_repair is not None and record.requires_repair != filters.requires_repair:
        return False

    if not _within(record.pipe.age_years, filters.age_min, filters.age_max):
        return False
    if not _within(record.pipe.diameter_in, filters.diameter_min, filters.diameter_max):
        return False
    if not _within(parse_timestamp(record.timestamp_utc), filters.date_from, filters.date_to):
        return False
    if filters.defect_severity_min is not None and not any(
        d.severity is not None and d.severity >= filters.defect_severity_min
        for d in record.defects
    ):
        return False
    if filters.text:
        haystack = build_search_text(InspectionNormalizer.search_fields(record))
        if search_key(filters.text) not in haystack:
            return False
    return True
