"""
Pydantic schemas for data validation and serialization.

Schemas:
    inspection: Source record validation (InspectionRecord and its groups)
    search: Search filters and backend results
    imports: Import options, progress snapshots and ledger views
    stats: Aggregates, validation and maintenance reports
    api: API endpoint request/response schemas

Usage:
    from schemas.inspection import InspectionRecord
    from schemas.search import SearchFilter

Example:
    record = InspectionRecord.model_validate(line_data)
    filters = SearchFilter(city="houston", score_min=50)

Validation:
    Source records keep unknown fields, so a record read back from the
    store carries the same data that was imported.
"""

__all__ = [
    "InspectionRecord",
    "SearchFilter",
    "SearchResult",
    "ImportOptions",
    "ImportProgress",
    "HealthCheckResponse",
    "SearchResponse",
    "StatsResponse",
]
