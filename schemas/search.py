"""
Pydantic schemas for search filters and results
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone

SortField = Literal[
    "timestamp_utc", "inspection_score", "city", "state", "material",
    "diameter_in", "age_years", "requires_repair",
]


class SearchFilter(BaseModel):
    """
    Filter contract shared by both search backends.

    - city, material: case-insensitive substring
    - state: case-insensitive exact value
    - score_min, score_max: inclusive bounds
    - requires_repair: exact when set
    - age_min/age_max, diameter_min/diameter_max: inclusive bounds on
      pipe.age_years and pipe.diameter_in; records without the value never match
    - date_from, date_to: inclusive bounds on timestamp_utc (UTC, whole seconds)
    - defect_severity_min: at least one defect with severity >= this
    - text: case-insensitive substring of city, state, material, district,
      street or notes

    Case-insensitive comparisons use Unicode casefolding.

    sort_by/sort_order pick the result order of the indexed backend; when
    sort_by is unset results are newest first. Ties are broken by id.
    """
    city: Optional[str] = None
    state: Optional[str] = None
    material: Optional[str] = None
    score_min: Optional[float] = None
    score_max: Optional[float] = None
    requires_repair: Optional[bool] = None

    age_min: Optional[float] = None
    age_max: Optional[float] = None
    diameter_min: Optional[float] = None
    diameter_max: Optional[float] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    defect_severity_min: Optional[int] = None
    text: Optional[str] = None

    sort_by: Optional[SortField] = None
    sort_order: Literal["asc", "desc"] = "desc"

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")

    @field_validator("city", "state", "material", "text", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Empty strings mean no constraint"""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("date_from", "date_to")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Compare as naive UTC, truncated to whole seconds"""
        if v is None:
            return v
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v.replace(microsecond=0)

    @model_validator(mode="after")
    def check_ranges(self):
        for low, high in (
            ("score_min", "score_max"),
            ("age_min", "age_max"),
            ("diameter_min", "diameter_max"),
            ("date_from", "date_to"),
        ):
            low_value, high_value = getattr(self, low), getattr(self, high)
            if low_value is not None and high_value is not None and low_value > high_value:
                raise ValueError(f"{low} must not be greater than {high}")
        return self

    def applied(self) -> Dict[str, Any]:
        """The constraining fields only, for echoing back to callers."""
        return self.model_dump(
            mode="json",
            exclude_none=True,
            exclude={"page", "page_size", "sort_by", "sort_order"},
        )


class SearchResult(BaseModel):
    """One page of matches plus the total count behind it."""
    results: List[Dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20
    total_is_estimate: bool = False
    backend: str = "indexed"

    @property
    def total_pages(self) -> int:
        if self.total_count <= 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1
