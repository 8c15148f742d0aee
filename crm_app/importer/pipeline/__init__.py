"""Importer pipeline helpers."""

from __future__ import annotations

from .dispatch import CeleryDispatcher, InlineDispatcher, SideEffectDispatcher, default_dispatcher
from .field_mapper import DraftDocument, FieldMapper, StageRef, split_cell
from .hierarchy import HierarchyResolver
from .job_service import ImportJobService, JobSummary, split_rows
from .linker import ConformityLinker, LinkSummary
from .lookups import ImportLookups
from .persister import MODEL_BY_CONTENT_TYPE, BatchPersister, InsertedRecord, PersistResult
from .progress import JobProgressTracker, OutcomeDelta
from .runner import FINISHED_MESSAGE, JobRunner, RunnerResult

__all__ = [
    "BatchPersister",
    "CeleryDispatcher",
    "ConformityLinker",
    "DraftDocument",
    "FINISHED_MESSAGE",
    "FieldMapper",
    "HierarchyResolver",
    "ImportJobService",
    "ImportLookups",
    "InlineDispatcher",
    "InsertedRecord",
    "JobProgressTracker",
    "JobRunner",
    "JobSummary",
    "LinkSummary",
    "MODEL_BY_CONTENT_TYPE",
    "OutcomeDelta",
    "PersistResult",
    "RunnerResult",
    "SideEffectDispatcher",
    "StageRef",
    "default_dispatcher",
    "split_cell",
    "split_rows",
]
