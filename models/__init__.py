"""
SQLAlchemy ORM models for the structured store.

Models:
    base: Declarative base, shared enums (ImportStatus) and timestamp helper
    inspection: Inspection rows with their child Defect rows
    checkpoint: ImportCheckpoint ledger rows, one per import run attempt

Database Schema:
    All models inherit from the Base declarative class. Filterable fields are
    indexed columns; nested inspection groups are stored as JSON.

Usage:
    from models import Inspection, Defect, ImportCheckpoint
    from models.base import ImportStatus

Relationships:
    - Inspection → Defect (one-to-many, cascade delete)
    - ImportCheckpoint → ImportCheckpoint (resumed_from_id)
"""

from models.base import Base, ImportStatus
from models.inspection import Inspection, Defect
from models.checkpoint import ImportCheckpoint

__all__ = [
    "Base",
    "ImportStatus",
    "Inspection",
    "Defect",
    "ImportCheckpoint",
]
