"""
Importer Celery tasks and the ``cancel_import`` remote control command.

``importer.bulk_insert`` handles one slice of an import job. Its return value
is the completion notification for that slice; the job-wide status lives on
the shared ``ImportJob`` row.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task
from celery.worker.control import control_command
from flask import current_app

from crm_app.importer.pipeline.runner import JobRunner
from crm_app.services.activity_service import append_creation_logs
from crm_app.services.verifier_service import ContactVerifier


@shared_task(name="importer.healthcheck", bind=True)
def importer_healthcheck(self) -> dict[str, Any]:
    """
    Simple heartbeat task used by worker health checks.
    """
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
        "app_version": getattr(self.app, "user_options", {}).get("version"),
    }


@shared_task(name="importer.bulk_insert", bind=True)
def bulk_insert(self, *, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Run one bulk-insert slice.

    Row failures are accounted on the job and never raise. An unsupported
    record kind or a vanished job does raise, after the job is updated where
    possible.
    """
    result = JobRunner().run_mapping(payload)
    current_app.logger.info(
        result.message,
        extra={
            "importer_job_id": result.job_id,
            "importer_task_id": self.request.id,
            "importer_cancelled": result.cancelled,
        },
    )
    return result.to_dict()


@shared_task(name="importer.append_activity_logs", bind=True, ignore_result=True)
def append_activity_logs(self, *, content_type: str, entries: list[dict], created_by: int | None = None) -> int:
    """Write creation history for a persisted batch."""
    return append_creation_logs(content_type, entries, created_by=created_by)


@shared_task(name="importer.validate_contact_point", bind=True, ignore_result=True)
def validate_contact_point(self, *, kind: str, value: str) -> dict[str, Any]:
    """Verify one email address or phone number and store the status on matching customers."""
    verifier = ContactVerifier()
    result = verifier.verify(kind, value)
    updated = verifier.apply(result)
    return {"kind": kind, "status": result.status, "skipped": result.skipped, "updated": updated}


@control_command(
    args=[("job_id", int)],
    signature="<job_id>",
)
def cancel_import(state, job_id: int) -> dict[str, Any]:
    """
    Acknowledge a cancel request for ``job_id``.

    The request itself is stored on the job row before the broadcast; workers
    read it from there when a slice starts.
    """
    hostname = getattr(getattr(state, "consumer", None), "hostname", None)
    return {"ok": "Cancelled", "job_id": job_id, "worker": hostname}
