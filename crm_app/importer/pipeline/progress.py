"""
Atomic progress accounting on the shared ``ImportJob`` row.

Many slices of one import report into the same row concurrently, so every
change is an in-database increment or an append-only child INSERT. Nothing
here reads the job before writing it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask import current_app
from sqlalchemy import case, insert, update
from sqlalchemy.orm import Session

from crm_app.importer.errors import JobNotFoundError
from crm_app.models import ImportJob, ImportJobError, ImportJobRecord, ImportJobStatus, db
from crm_app.models.base import utcnow


@dataclass(frozen=True)
class OutcomeDelta:
    """What one invocation adds to the shared job."""

    success: int = 0
    failed: int = 0
    weight: float = 0.0
    error_messages: tuple[str, ...] = ()
    inserted_ids: tuple[int, ...] = ()
    content_type: str | None = None

    @classmethod
    def succeeded(cls, count: int, *, weight: float, inserted_ids: Iterable[int], content_type: str):
        return cls(success=count, weight=weight, inserted_ids=tuple(inserted_ids), content_type=content_type)

    @classmethod
    def failed_slice(cls, count: int, message: str, *, weight: float = 0.0):
        return cls(failed=count, weight=weight, error_messages=(message,))


class JobProgressTracker:
    """Apply outcome deltas to an ``ImportJob`` and detect completion."""

    def __init__(self, session: Session | None = None) -> None:
        self.session: Session = session or db.session

    def record_outcome(self, job_id: int, delta: OutcomeDelta) -> None:
        """Increment counters and append messages/ids in one transaction."""

        try:
            values = {}
            if delta.success:
                values["success"] = ImportJob.success + delta.success
            if delta.failed:
                values["failed"] = ImportJob.failed + delta.failed
            if delta.weight:
                capped = ImportJob.percentage + delta.weight
                values["percentage"] = case((capped >= 100, 100.0), else_=capped)
            values["updated_at"] = utcnow()

            result = self.session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise JobNotFoundError(job_id)

            self.session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id, ImportJob.status == ImportJobStatus.PENDING)
                .values(status=ImportJobStatus.IN_PROGRESS)
                .execution_options(synchronize_session=False)
            )

            if delta.error_messages:
                self.session.execute(
                    insert(ImportJobError),
                    [{"job_id": job_id, "message": message} for message in delta.error_messages],
                )
            if delta.inserted_ids:
                self.session.execute(
                    insert(ImportJobRecord),
                    [
                        {"job_id": job_id, "content_type": delta.content_type or "", "record_id": record_id}
                        for record_id in delta.inserted_ids
                    ],
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def maybe_complete(self, job_id: int) -> bool:
        """
        Mark the job Done once every row is accounted for.

        Safe to call from every invocation: the guarded UPDATE only matches a
        job that is not Done yet, so exactly one caller sees ``True``.
        """

        try:
            result = self.session.execute(
                update(ImportJob)
                .where(
                    ImportJob.id == job_id,
                    ImportJob.status != ImportJobStatus.DONE,
                    ImportJob.success + ImportJob.failed == ImportJob.total,
                )
                .values(status=ImportJobStatus.DONE, percentage=100.0, finished_at=utcnow(), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            completed = result.rowcount == 1
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        job = self.session.get(ImportJob, job_id, populate_existing=True)
        if job is None:
            raise JobNotFoundError(job_id)
        if completed:
            current_app.logger.info(
                "Import job completed",
                extra={
                    "importer_job_id": job_id,
                    "importer_success": job.success,
                    "importer_failed": job.failed,
                },
            )
        return completed
