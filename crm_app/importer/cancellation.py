"""
Cooperative cancellation for bulk-insert invocations.

A cancel request is stored on the ``ImportJob`` row, so every worker process
sees it whatever the pool or broker. Invocations check it once when they
start; a slice that is already running finishes normally. The
``cancel_import`` broadcast only collects acknowledgements from live workers.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from crm_app.importer.errors import JobNotFoundError
from crm_app.models import ImportJob, db
from crm_app.models.base import utcnow


class CancellationRegistry:
    """Set-once cancel requests kept on import job rows."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session or db.session

    def request_cancel(self, job_id: int) -> bool:
        """Mark the job cancelled. Returns ``False`` when it already was."""

        session = self.session
        try:
            result = session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id, ImportJob.cancel_requested_at.is_(None))
                .values(cancel_requested_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            newly_cancelled = result.rowcount == 1
            if not newly_cancelled and session.scalar(select(ImportJob.id).where(ImportJob.id == job_id)) is None:
                raise JobNotFoundError(job_id)
            session.commit()
        except Exception:
            session.rollback()
            raise
        return newly_cancelled

    def is_cancelled(self, job_id: int) -> bool:
        requested_at = self.session.scalar(select(ImportJob.cancel_requested_at).where(ImportJob.id == job_id))
        return requested_at is not None


cancellation_registry = CancellationRegistry()


def broadcast_cancel(celery_app, job_id: int, *, timeout: float = 1.0) -> list:
    """
    Tell live workers that ``job_id`` was cancelled and return their replies.

    Brokers without fanout support return no replies; the request stored on
    the job row is what workers act on.
    """

    return celery_app.control.broadcast(
        "cancel_import",
        arguments={"job_id": int(job_id)},
        reply=True,
        timeout=timeout,
    )
