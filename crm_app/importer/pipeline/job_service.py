"""
Service helpers for creating import jobs, reading their progress, and
splitting a full row set into bulk-insert slices.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from flask import current_app
from sqlalchemy.orm import Session

from crm_app.importer.contracts import ImportContentType, ImportPayload, parse_column_properties
from crm_app.importer.errors import JobNotFoundError
from crm_app.models import ImportJob, ImportJobStatus, db

DEFAULT_SLICE_SIZE = 100


@dataclass(slots=True)
class JobSummary:
    """Serializable view of an import job."""

    id: int
    content_type: str
    status: str
    total: int
    success: int
    failed: int
    percentage: float
    error_messages: list[str] = field(default_factory=list)
    inserted_ids: list[int] = field(default_factory=list)
    triggered_by_user_id: int | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None
    cancel_requested_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content_type": self.content_type,
            "status": self.status,
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "percentage": round(self.percentage, 2),
            "error_messages": list(self.error_messages),
            "inserted_ids": list(self.inserted_ids),
            "triggered_by_user_id": self.triggered_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "cancel_requested_at": self.cancel_requested_at.isoformat() if self.cancel_requested_at else None,
        }


def split_rows(rows: Sequence[Sequence[Any]], slice_size: int) -> list[Sequence[Sequence[Any]]]:
    slice_size = max(int(slice_size), 1)
    return [rows[start : start + slice_size] for start in range(0, len(rows), slice_size)]


class ImportJobService:
    """Facade over ``ImportJob`` persistence and slice dispatch."""

    def __init__(self, session: Session | None = None) -> None:
        self.session: Session = session or db.session

    def create_job(
        self,
        content_type: ImportContentType | str,
        total: int,
        *,
        triggered_by_user_id: int | None = None,
    ) -> ImportJob:
        kind = ImportContentType.parse(content_type)
        job = ImportJob(
            content_type=kind.value,
            total=max(int(total), 0),
            success=0,
            failed=0,
            percentage=0.0,
            status=ImportJobStatus.PENDING,
            triggered_by_user_id=triggered_by_user_id,
        )
        self.session.add(job)
        self.session.commit()
        return job

    def get_job(self, job_id: int) -> ImportJob:
        job = self.session.get(ImportJob, job_id, populate_existing=True)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def get_job_summary(self, job_id: int) -> JobSummary:
        return self.summarize(self.get_job(job_id))

    def summarize(self, job: ImportJob) -> JobSummary:
        return JobSummary(
            id=job.id,
            content_type=job.content_type,
            status=job.status.value,
            total=job.total,
            success=job.success,
            failed=job.failed,
            percentage=float(job.percentage or 0.0),
            error_messages=job.error_messages,
            inserted_ids=sorted(job.inserted_ids),
            triggered_by_user_id=job.triggered_by_user_id,
            created_at=job.created_at,
            finished_at=job.finished_at,
            cancel_requested_at=job.cancel_requested_at,
        )

    def build_payloads(
        self,
        job: ImportJob,
        rows: Sequence[Sequence[Any]],
        column_properties: Iterable[Mapping[str, Any]],
        *,
        acting_user_id: int | None = None,
        scope_tags: Iterable[str] = (),
        slice_size: int | None = None,
    ) -> list[ImportPayload]:
        """One payload per slice; each slice weighs ``len(slice) / total * 100`` percent."""

        if slice_size is None:
            slice_size = current_app.config.get("IMPORTER_SLICE_SIZE", DEFAULT_SLICE_SIZE)
        properties = parse_column_properties(list(column_properties))
        total = job.total or len(rows)
        content_type = ImportContentType.parse(job.content_type)

        payloads = []
        for chunk in split_rows(list(rows), slice_size):
            payloads.append(
                ImportPayload(
                    job_id=job.id,
                    content_type=content_type,
                    rows=tuple(tuple(row) for row in chunk),
                    column_properties=properties,
                    acting_user_id=acting_user_id,
                    scope_tags=tuple(scope_tags),
                    success_weight=(len(chunk) / total * 100) if total else 0.0,
                )
            )
        return payloads

    def enqueue(self, celery_app, payloads: Iterable[ImportPayload]) -> list[str]:
        """Queue one ``importer.bulk_insert`` task per payload and return the task ids."""

        task = celery_app.tasks["importer.bulk_insert"]
        task_ids = []
        for payload in payloads:
            async_result = task.apply_async(kwargs={"payload": payload.to_mapping()})
            task_ids.append(async_result.id)
        current_app.logger.info(
            "Import slices enqueued",
            extra={"importer_slices": len(task_ids)},
        )
        return task_ids
