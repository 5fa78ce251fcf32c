"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from models.base import utcnow
from schemas.imports import CheckpointResponse

# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    import_running: bool = False
    sources: List[CheckpointResponse] = Field(default_factory=list)
    total_sources: int = 0
    completed_sources: int = 0
    failed_sources: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.failed_sources == 0:
            self.status = "healthy"
        elif self.failed_sources < self.total_sources:
            self.status = "degraded"
        else:
            self.status = "unhealthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "import_running": False,
                "total_sources": 5,
                "completed_sources": 5,
                "failed_sources": 0,
            }
        }

# ============================================================================
# Search Schemas
# ============================================================================

class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    has_next: bool
    has_previous: bool


class SearchResponse(BaseModel):
    """Paginated search response"""
    results: List[Dict[str, Any]]
    pagination: PaginationMetadata
    total_is_estimate: bool = False
    backend: str
    filters_applied: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "results": [
                    {
                        "id": "INS-000123",
                        "timestamp_utc": "2024-01-15T10:00:00Z",
                        "location": {"city": "Houston", "state": "TX"},
                        "pipe": {"material": "PVC", "diameter_in": 12},
                        "defects": [],
                        "inspection_score": 82.5,
                        "requires_repair": False
                    }
                ],
                "pagination": {
                    "total_items": 150,
                    "total_pages": 8,
                    "current_page": 1,
                    "page_size": 20,
                    "has_next": True,
                    "has_previous": False
                },
                "total_is_estimate": False,
                "backend": "indexed",
                "filters_applied": {"city": "houston"}
            }
        }

# ============================================================================
# Import Schemas
# ============================================================================

class ImportAccepted(BaseModel):
    """Response to a start-import request"""
    message: str
    source_id: Optional[str] = None
    resume: bool = False

# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Import already running",
                "detail": "An import is already running",
                "timestamp": "2024-01-15T10:30:00Z"
            }
        }
