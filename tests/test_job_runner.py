import random
import threading
import time
from unittest.mock import Mock

import pytest
import requests
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from crm_app.importer.cancellation import CancellationRegistry, cancellation_registry
from crm_app.importer.errors import InvalidPayloadError, JobNotFoundError, UnsupportedContentTypeError
from crm_app.importer.pipeline.dispatch import InlineDispatcher, SideEffectDispatcher
from crm_app.importer.pipeline.runner import FINISHED_MESSAGE, JobRunner
from crm_app.models import ActivityLog, Company, Customer, Deal, ImportJob, ImportJobStatus, db

CUSTOMER_COLUMNS = [
    {"index": 0, "kind": "basicField", "targetFieldName": "firstName"},
    {"index": 1, "kind": "basicField", "targetFieldName": "primaryEmail"},
    {"index": 2, "kind": "companyNames"},
]


def _payload(job, rows, columns=CUSTOMER_COLUMNS, kind="customer", **extra):
    payload = {
        "jobId": job.id,
        "recordKind": kind,
        "rows": rows,
        "columnProperties": columns,
        "successWeight": len(rows) / job.total * 100,
    }
    payload.update(extra)
    return payload


def _count(model):
    return db.session.scalar(select(func.count()).select_from(model))


def _reload(job_id):
    return db.session.get(ImportJob, job_id, populate_existing=True)


def test_successful_slice_persists_links_and_completes_job(acting_user, job_factory, dispatcher):
    job = job_factory(total=2)
    rows = [["Ada", "ada@example.com", "Acme"], ["Grace", "grace@example.com", ""]]

    result = JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, rows, actingUserId=acting_user.id))

    assert result.message == FINISHED_MESSAGE
    assert result.success == 2
    assert result.failed == 0
    assert result.job_completed is True
    assert len(result.inserted_ids) == 2

    job = _reload(job.id)
    assert job.status is ImportJobStatus.DONE
    assert job.success == 2
    assert job.inserted_ids == set(result.inserted_ids)
    assert job.error_messages == []

    customers = db.session.scalars(select(Customer).order_by(Customer.id)).all()
    assert [customer.owner_id for customer in customers] == [acting_user.id, acting_user.id]
    assert _count(Company) == 1

    assert dispatcher.activity_logs == [
        (
            "customer",
            [{"id": record_id, "content": {"source": "import"}} for record_id in result.inserted_ids],
            acting_user.id,
        )
    ]
    assert dispatcher.validations == [("email", "ada@example.com"), ("email", "grace@example.com")]


def test_partial_slice_leaves_job_in_progress(acting_user, job_factory, dispatcher):
    job = job_factory(total=4)

    result = JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["Ada", "ada@example.com", ""]]))

    assert result.job_completed is False
    job = _reload(job.id)
    assert job.status is ImportJobStatus.IN_PROGRESS
    assert job.percentage == pytest.approx(25.0)


def test_cancelled_job_is_skipped_without_touching_the_job(acting_user, job_factory, dispatcher):
    job = job_factory(total=1)
    cancellation_registry.request_cancel(job.id)

    result = JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["Ada", "ada@example.com", ""]]))

    assert result.cancelled is True
    assert result.message == "Cancelled"
    assert _count(Customer) == 0
    job = _reload(job.id)
    assert (job.success, job.failed, job.status) == (0, 0, ImportJobStatus.PENDING)
    assert dispatcher.activity_logs == []


def test_batch_failure_counts_every_row_as_failed(acting_user, job_factory, number_field, dispatcher):
    job = job_factory(total=2)
    columns = [
        {"index": 0, "kind": "basicField", "targetFieldName": "firstName"},
        {"index": 1, "kind": "customField", "targetFieldName": str(number_field.id)},
    ]

    result = JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["Ada", "12"], ["Grace", "many"]], columns))

    assert result.failed == 2
    assert result.success == 0
    assert "many" in result.error
    assert result.job_completed is True
    assert _count(Customer) == 0

    job = _reload(job.id)
    assert job.failed == 2
    assert job.status is ImportJobStatus.DONE
    assert job.error_messages == [result.error]
    assert job.inserted_ids == set()
    assert dispatcher.activity_logs == []


def test_linking_failure_keeps_persisted_records(acting_user, job_factory, dispatcher):
    job = job_factory(total=1)

    # No primary email, so the company hint cannot be matched back to the record
    result = JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["Ada", "", "Acme"]]))

    assert result.failed == 1
    assert "Could not match" in result.error
    assert _count(Customer) == 1
    assert _count(Company) == 0
    assert len(dispatcher.activity_logs) == 1

    job = _reload(job.id)
    assert job.failed == 1
    assert job.inserted_ids == set()


def test_strict_row_mapping_fails_slice_on_unknown_owner(acting_user, job_factory, dispatcher):
    job = job_factory(total=1)
    columns = [
        {"index": 0, "kind": "basicField", "targetFieldName": "firstName"},
        {"index": 1, "kind": "ownerEmail", "targetFieldName": "ownerId"},
    ]

    result = JobRunner(dispatcher=dispatcher, strict_row_mapping=True).run_mapping(
        _payload(job, [["Ada", "ghost@example.com"]], columns)
    )

    assert result.failed == 1
    assert "ghost@example.com" in result.error


def test_work_items_land_on_resolved_stage(acting_user, job_factory, deal_stage, dispatcher):
    job = job_factory(total=1, content_type="deal")
    columns = [
        {"index": 0, "kind": "basicField", "targetFieldName": "name"},
        {"index": 1, "kind": "boardName"},
        {"index": 2, "kind": "pipelineName"},
        {"index": 3, "kind": "stageName"},
    ]

    result = JobRunner(dispatcher=dispatcher).run_mapping(
        _payload(job, [["Big deal", "Sales", "Inbound", "New"]], columns, kind="deal", actingUserId=acting_user.id)
    )

    deal = db.session.get(Deal, result.inserted_ids[0])
    assert deal.stage_id == deal_stage.id
    assert deal.user_id == acting_user.id
    assert dispatcher.activity_logs[0][0] == "deal"


def test_unsupported_content_type_is_recorded_then_raised(job_factory, dispatcher):
    job = job_factory(total=3)

    with pytest.raises(UnsupportedContentTypeError):
        JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["a"], ["b"], ["c"]], kind="invoice"))

    job = _reload(job.id)
    assert job.failed == 3
    assert job.status is ImportJobStatus.DONE
    assert job.error_messages == ['Unsupported content type "invoice"']


def test_unsupported_content_type_on_cancelled_job_is_skipped(job_factory, dispatcher):
    job = job_factory(total=1)
    cancellation_registry.request_cancel(job.id)

    result = JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["a"]], kind="invoice"))

    assert result.cancelled is True
    assert _reload(job.id).failed == 0


def test_missing_job_raises_after_insert(acting_user, dispatcher):
    payload = {
        "jobId": 4242,
        "recordKind": "customer",
        "rows": [["Ada", "ada@example.com", ""]],
        "columnProperties": CUSTOMER_COLUMNS,
    }

    with pytest.raises(JobNotFoundError):
        JobRunner(dispatcher=dispatcher).run_mapping(payload)


def test_inline_side_effects_when_no_worker(acting_user, job_factory):
    job = job_factory(total=1)

    result = JobRunner().run_mapping(_payload(job, [["Ada", "ada@example.com", ""]], actingUserId=acting_user.id))

    logs = db.session.scalars(select(ActivityLog)).all()
    assert [(log.content_type, log.content_id, log.created_by) for log in logs] == [
        ("customer", result.inserted_ids[0], acting_user.id)
    ]
    # No verifier configured, so the status stays unknown
    assert db.session.get(Customer, result.inserted_ids[0]).email_validation_status == "unknown"


def test_cancel_requested_from_another_session_skips_the_slice(acting_user, job_factory, dispatcher):
    job = job_factory(total=1)
    with Session(db.engine) as other:
        registry = CancellationRegistry(other)
        assert registry.request_cancel(job.id) is True
        assert registry.request_cancel(job.id) is False

    result = JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["Ada", "ada@example.com", ""]]))

    assert result.cancelled is True
    assert _count(Customer) == 0
    job = _reload(job.id)
    assert job.cancel_requested_at is not None
    assert (job.success, job.failed) == (0, 0)


def test_cancel_request_for_missing_job_raises(app):
    with pytest.raises(JobNotFoundError):
        cancellation_registry.request_cancel(4242)
    assert cancellation_registry.is_cancelled(4242) is False


def test_malformed_payload_is_recorded_then_raised(job_factory, dispatcher):
    job = job_factory(total=2)
    columns = [{"index": "A", "kind": "basicField", "targetFieldName": "firstName"}]

    with pytest.raises(InvalidPayloadError):
        JobRunner(dispatcher=dispatcher).run_mapping(_payload(job, [["a"], ["b"]], columns=columns))

    job = _reload(job.id)
    assert job.failed == 2
    assert job.status is ImportJobStatus.DONE
    assert len(job.error_messages) == 1
    assert _count(Customer) == 0


def test_payload_without_job_id_raises_without_accounting(job_factory, dispatcher):
    job = job_factory(total=1)

    with pytest.raises(InvalidPayloadError, match="jobId"):
        JobRunner(dispatcher=dispatcher).run_mapping({"recordKind": "customer", "rows": [["a"]], "columnProperties": []})
    with pytest.raises(InvalidPayloadError):
        JobRunner(dispatcher=dispatcher).run_mapping(["not", "a", "mapping"])

    job = _reload(job.id)
    assert (job.success, job.failed, job.status) == (0, 0, ImportJobStatus.PENDING)


def test_inline_verification_runs_after_the_slice_is_accounted(app, acting_user, job_factory, monkeypatch):
    job = job_factory(total=2)
    job_id = job.id
    monkeypatch.setitem(app.config, "CONTACT_VERIFIER_URL", "https://verify.test")
    seen = []

    def slow_post(self, url, **kwargs):
        time.sleep(0.2)
        row = db.session.execute(select(ImportJob.success, ImportJob.status).where(ImportJob.id == job_id)).one()
        seen.append(tuple(row))
        response = Mock()
        response.json.return_value = {"status": "valid"}
        return response

    monkeypatch.setattr(requests.Session, "post", slow_post)
    rows = [["Ada", "ada@example.com", ""], ["Grace", "grace@example.com", ""]]

    result = JobRunner().run_mapping(_payload(job, rows, actingUserId=acting_user.id))

    assert result.job_completed is True
    # Both verifications saw the finished job
    assert seen == [(2, ImportJobStatus.DONE), (2, ImportJobStatus.DONE)]
    statuses = db.session.scalars(select(Customer.email_validation_status).order_by(Customer.id)).all()
    assert statuses == ["valid", "valid"]


def test_concurrent_runner_invocations_mark_done_exactly_once(app, job_factory, dispatcher):
    slices = 50
    job = job_factory(total=slices)
    job_id = job.id

    barrier = threading.Barrier(slices, timeout=60)
    results = []
    errors = []
    lock = threading.Lock()

    def _invoke(index):
        payload = {
            "jobId": job_id,
            "recordKind": "customer",
            "rows": [[f"Person {index}", f"person{index}@example.com", ""]],
            "columnProperties": CUSTOMER_COLUMNS,
            "successWeight": 100 / slices,
        }
        try:
            with app.app_context():
                runner = JobRunner(dispatcher=dispatcher)
                barrier.wait()
                time.sleep(random.uniform(0, 0.02))
                result = runner.run_mapping(payload)
            with lock:
                results.append(result)
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            with lock:
                errors.append(exc)

    threads = [threading.Thread(target=_invoke, args=(index,)) for index in range(slices)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=120)

    assert errors == []
    assert len(results) == slices
    assert [result.job_completed for result in results].count(True) == 1
    assert all(result.success == 1 for result in results)

    job = _reload(job_id)
    assert (job.success, job.failed, job.total) == (slices, 0, slices)
    assert job.status is ImportJobStatus.DONE
    assert job.percentage == pytest.approx(100.0)
    assert len(job.inserted_ids) == slices
    assert _count(Customer) == slices


def test_dispatcher_base_requires_both_side_effect_hooks():
    class ActivityOnly(SideEffectDispatcher):
        def append_activity_logs(self, content_type, entries, *, created_by):
            pass

    with pytest.raises(TypeError):
        SideEffectDispatcher()
    with pytest.raises(TypeError):
        ActivityOnly()
    assert InlineDispatcher.runs_inline is True
