"""
Importer-specific SQLAlchemy models.

These models back bulk import progress tracking: the shared job row plus its
append-only error and inserted-record children.
"""

from .schema import ImportJob, ImportJobError, ImportJobRecord, ImportJobStatus

__all__ = [
    "ImportJob",
    "ImportJobError",
    "ImportJobRecord",
    "ImportJobStatus",
]
