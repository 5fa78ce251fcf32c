"""
Pydantic schemas for store aggregates, validation and maintenance reports
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from models.base import utcnow
from schemas.imports import CheckpointResponse


class ValueCount(BaseModel):
    """A group value, how many inspections have it and their mean score"""
    value: str
    count: int
    average_score: Optional[float] = None


class ScoreBucket(BaseModel):
    """Inspections scoring at least min_score and below max_score (open when None)"""
    label: str
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    count: int


class SearchOverview(BaseModel):
    total_inspections: int = 0
    average_score: Optional[float] = None
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    repairs_needed: int = 0
    unique_cities: int = 0
    unique_states: int = 0
    unique_materials: int = 0


class SearchStats(BaseModel):
    """Summary of the inspections matching a filter"""
    overview: SearchOverview
    material_distribution: List[ValueCount] = Field(default_factory=list)
    city_distribution: List[ValueCount] = Field(default_factory=list)
    score_distribution: List[ScoreBucket] = Field(default_factory=list)


class SearchOptions(BaseModel):
    """Distinct values callers can filter on"""
    cities: List[str] = Field(default_factory=list)
    states: List[str] = Field(default_factory=list)
    materials: List[str] = Field(default_factory=list)


class DatabaseStats(BaseModel):
    total_inspections: int
    total_defects: int
    total_imports: int
    last_import: Optional[CheckpointResponse] = None


class StoreValidationReport(BaseModel):
    """Consistency checks over imported data"""
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


class DatabaseInfo(BaseModel):
    page_count: int
    page_size: int
    size_bytes: int
    freelist_count: int
    fragmentation_percent: float
    journal_mode: str


class StatsResponse(BaseModel):
    """Statistics response model"""
    timestamp: datetime = Field(default_factory=utcnow)
    database: DatabaseStats
    search: SearchStats
    import_running: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "timestamp": "2024-01-15T10:30:00Z",
                "database": {
                    "total_inspections": 50000,
                    "total_defects": 132000,
                    "total_imports": 5,
                },
                "search": {
                    "overview": {
                        "total_inspections": 50000,
                        "average_score": 71.4,
                        "repairs_needed": 9120,
                    },
                    "score_distribution": [
                        {"label": "Excellent", "min_score": 90, "max_score": None, "count": 8021}
                    ],
                },
                "import_running": False,
            }
        }
