"""
Bulk insert orchestration for one slice of an import job.

``JobRunner.run`` maps the rows, resolves work item stages, persists the
batch, hands off side effects, links relationships and finally reports the
outcome to the shared job. A failure anywhere before the outcome is recorded
counts the whole slice as failed; it never escapes without accounting.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Mapping

from flask import current_app
from sqlalchemy.orm import Session

from crm_app.importer.cancellation import CancellationRegistry
from crm_app.importer.contracts import ImportPayload
from crm_app.importer.errors import ImporterError, InvalidPayloadError
from crm_app.importer.metrics import record_cancelled_slice, record_slice
from crm_app.importer.pipeline.dispatch import SideEffectDispatcher, default_dispatcher
from crm_app.importer.pipeline.field_mapper import FieldMapper
from crm_app.importer.pipeline.hierarchy import HierarchyResolver
from crm_app.importer.pipeline.linker import ConformityLinker
from crm_app.importer.pipeline.lookups import ImportLookups
from crm_app.importer.pipeline.persister import BatchPersister
from crm_app.importer.pipeline.progress import JobProgressTracker, OutcomeDelta
from crm_app.models import db

FINISHED_MESSAGE = "Successfully finished job"


def _raw_job_id(raw: Mapping[str, Any]) -> int | None:
    try:
        return int(raw.get("jobId", raw.get("job_id")))
    except (TypeError, ValueError):
        return None


@dataclass
class RunnerResult:
    """Summary returned to the task caller (the completion notification)."""

    job_id: int
    content_type: str | None
    rows: int = 0
    success: int = 0
    failed: int = 0
    error: str | None = None
    inserted_ids: list[int] = field(default_factory=list)
    job_completed: bool = False
    cancelled: bool = False
    message: str = FINISHED_MESSAGE

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "content_type": self.content_type,
            "rows": self.rows,
            "success": self.success,
            "failed": self.failed,
            "error": self.error,
            "inserted_ids": list(self.inserted_ids),
            "job_completed": self.job_completed,
            "cancelled": self.cancelled,
            "message": self.message,
        }


class JobRunner:
    """Drive one bulk-insert invocation end to end."""

    def __init__(
        self,
        *,
        session: Session | None = None,
        dispatcher: SideEffectDispatcher | None = None,
        tracker: JobProgressTracker | None = None,
        cancellation: CancellationRegistry | None = None,
        strict_row_mapping: bool | None = None,
        strict_category_match: bool | None = None,
    ) -> None:
        config = current_app.config
        self.session: Session = session or db.session
        self.dispatcher = dispatcher
        self.tracker = tracker or JobProgressTracker(self.session)
        self.cancellation = cancellation or CancellationRegistry(self.session)
        if strict_row_mapping is None:
            strict_row_mapping = bool(config.get("IMPORTER_STRICT_ROW_MAPPING", False))
        if strict_category_match is None:
            strict_category_match = bool(config.get("IMPORTER_STRICT_CATEGORY_MATCH", False))
        self.strict_row_mapping = strict_row_mapping
        self.strict_category_match = strict_category_match

    def run_mapping(self, raw: Mapping[str, Any]) -> RunnerResult:
        """
        Parse a raw task payload and run it.

        An unknown record kind or a malformed payload is rejected before any
        row is touched. When the job id is readable the slice still counts as
        failed so the job can finish, then the error is raised to the caller.
        """

        if not isinstance(raw, Mapping):
            raise InvalidPayloadError(f"Bulk insert payload must be a mapping, got {type(raw).__name__}")
        try:
            payload = ImportPayload.from_mapping(raw)
        except (ValueError, TypeError, KeyError) as exc:
            job_id = _raw_job_id(raw)
            if job_id is None:
                raise InvalidPayloadError(f"Bulk insert payload has no usable jobId: {exc}") from exc
            if self.cancellation.is_cancelled(job_id):
                return self._cancelled(job_id, None)
            self._reject(job_id, raw, exc)
            if isinstance(exc, ImporterError):
                raise
            raise InvalidPayloadError(f"Malformed bulk insert payload: {exc}") from exc
        return self.run(payload)

    def run(self, payload: ImportPayload) -> RunnerResult:
        kind = payload.content_type
        if self.cancellation.is_cancelled(payload.job_id):
            return self._cancelled(payload.job_id, kind.value)

        started = time.monotonic()
        result = RunnerResult(job_id=payload.job_id, content_type=kind.value, rows=payload.row_count)
        lookups = ImportLookups(self.session)
        dispatcher = self.dispatcher or default_dispatcher()
        committed = None

        try:
            mapper = FieldMapper(
                kind,
                lookups=lookups,
                acting_user_id=payload.acting_user_id,
                scope_tags=payload.scope_tags,
                strict=self.strict_row_mapping,
            )
            drafts = mapper.map_rows(payload.rows, payload.column_properties)
            if kind.is_work_item:
                HierarchyResolver(lookups).apply(drafts, kind)

            persister = BatchPersister(
                lookups=lookups, session=self.session, strict_categories=self.strict_category_match
            )
            persisted = persister.persist(drafts, kind, payload.acting_user_id)
            self.session.commit()
            committed = persisted

            if not dispatcher.runs_inline:
                dispatcher.dispatch(persisted, acting_user_id=payload.acting_user_id)

            linker = ConformityLinker(
                lookups=lookups,
                session=self.session,
                scope_tags=payload.scope_tags,
                acting_user_id=payload.acting_user_id,
            )
            linker.link(drafts, persisted.records, kind)
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            result.failed = payload.row_count
            result.error = str(exc) or exc.__class__.__name__
            delta = OutcomeDelta.failed_slice(payload.row_count, result.error, weight=payload.success_weight)
            current_app.logger.warning(
                "Bulk insert slice failed",
                extra={
                    "importer_job_id": payload.job_id,
                    "importer_content_type": kind.value,
                    "importer_rows": payload.row_count,
                    "importer_error": result.error,
                },
                exc_info=True,
            )
        else:
            result.success = payload.row_count
            result.inserted_ids = persisted.inserted_ids
            delta = OutcomeDelta.succeeded(
                payload.row_count,
                weight=payload.success_weight,
                inserted_ids=persisted.inserted_ids,
                content_type=kind.value,
            )

        self.tracker.record_outcome(payload.job_id, delta)
        result.job_completed = self.tracker.maybe_complete(payload.job_id)

        duration = time.monotonic() - started
        record_slice(
            content_type=kind.value,
            outcome="failure" if result.failed else "success",
            rows=payload.row_count,
            duration_seconds=duration,
        )
        current_app.logger.info(
            "Bulk insert slice finished",
            extra={
                "importer_job_id": payload.job_id,
                "importer_content_type": kind.value,
                "importer_success": result.success,
                "importer_failed": result.failed,
                "importer_job_completed": result.job_completed,
                "importer_duration_seconds": round(duration, 3),
            },
        )

        # In-process side effects stay off the accounting path
        if committed is not None and dispatcher.runs_inline:
            dispatcher.dispatch(committed, acting_user_id=payload.acting_user_id)
        return result

    def _reject(self, job_id: int, raw: Mapping[str, Any], exc: Exception) -> None:
        rows = raw.get("rows")
        row_count = len(rows) if isinstance(rows, (list, tuple)) else 0
        try:
            weight = float(raw.get("successWeight", raw.get("success_weight")) or 0.0)
        except (TypeError, ValueError):
            weight = 0.0
        message = str(exc) or exc.__class__.__name__
        self.tracker.record_outcome(job_id, OutcomeDelta.failed_slice(row_count, message, weight=weight))
        self.tracker.maybe_complete(job_id)
        current_app.logger.warning(
            "Rejected bulk insert slice",
            extra={
                "importer_job_id": job_id,
                "importer_content_type": str(raw.get("recordKind", raw.get("content_type"))),
                "importer_error": message,
            },
        )

    def _cancelled(self, job_id: int, content_type: str | None) -> RunnerResult:
        record_cancelled_slice()
        current_app.logger.info("Bulk insert slice skipped, job cancelled", extra={"importer_job_id": job_id})
        return RunnerResult(job_id=job_id, content_type=content_type, cancelled=True, message="Cancelled")
