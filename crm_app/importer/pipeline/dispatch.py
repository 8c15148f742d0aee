"""
Fire-and-forget side effects of a committed batch.

Activity logs and contact point validation never affect invocation
accounting: a dispatcher logs and counts a failed hand-off, then moves on.
Dispatchers that do the work in process are only invoked after the slice's
outcome has been recorded on the job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from flask import current_app

from crm_app.importer.metrics import record_dispatch_failure
from crm_app.importer.pipeline.persister import PersistResult
from crm_app.models import db


class SideEffectDispatcher(ABC):
    """Base dispatcher; subclasses decide where the work actually runs."""

    # True when the work happens in the calling process
    runs_inline = False

    @abstractmethod
    def append_activity_logs(self, content_type: str, entries: Sequence[dict], *, created_by: int | None) -> None:
        """Write creation history for ``entries``."""

    @abstractmethod
    def validate_contact_point(self, kind: str, value: str) -> None:
        """Verify one email address or phone number."""

    def dispatch(self, result: PersistResult, *, acting_user_id: int | None) -> None:
        """Hand off every side effect of ``result``, swallowing hand-off failures."""

        if result.activity_kind and result.activity_entries:
            try:
                self.append_activity_logs(result.activity_kind, result.activity_entries, created_by=acting_user_id)
            except Exception:
                record_dispatch_failure("activity_logs")
                current_app.logger.warning(
                    "Failed to dispatch import activity logs",
                    extra={"importer_content_type": result.activity_kind},
                    exc_info=True,
                )

        for kind, value in result.validation_requests:
            try:
                self.validate_contact_point(kind, value)
            except Exception:
                record_dispatch_failure("validation")
                current_app.logger.warning(
                    "Failed to dispatch contact point validation",
                    extra={"importer_validation_kind": kind},
                    exc_info=True,
                )


class CeleryDispatcher(SideEffectDispatcher):
    """Enqueue side effects as importer Celery tasks."""

    def __init__(self, celery_app) -> None:
        self.celery_app = celery_app

    def append_activity_logs(self, content_type, entries, *, created_by):
        self.celery_app.tasks["importer.append_activity_logs"].apply_async(
            kwargs={"content_type": content_type, "entries": list(entries), "created_by": created_by}
        )

    def validate_contact_point(self, kind, value):
        self.celery_app.tasks["importer.validate_contact_point"].apply_async(kwargs={"kind": kind, "value": value})


class InlineDispatcher(SideEffectDispatcher):
    """Run side effects in process; used when no worker is configured."""

    runs_inline = True

    def append_activity_logs(self, content_type, entries, *, created_by):
        from crm_app.services.activity_service import append_creation_logs

        try:
            append_creation_logs(content_type, entries, created_by=created_by)
        except Exception:
            db.session.rollback()
            raise

    def validate_contact_point(self, kind, value):
        from crm_app.services.verifier_service import ContactVerifier

        verifier = ContactVerifier()
        try:
            verifier.apply(verifier.verify(kind, value))
        except Exception:
            db.session.rollback()
            raise


def default_dispatcher() -> SideEffectDispatcher:
    from crm_app.importer.celery_app import get_celery_app

    celery_app = get_celery_app(current_app)
    if celery_app is None:
        return InlineDispatcher()
    return CeleryDispatcher(celery_app)
