from flask import Flask

from crm_app.importer import init_importer
from crm_app.importer.pipeline.progress import JobProgressTracker, OutcomeDelta
from crm_app.models import ImportJob, db

EAGER = {"task_always_eager": True, "task_eager_propagates": True}


def build_app(tmp_path, **overrides) -> Flask:
    """Standalone app with its own database so blueprint registration is fresh."""
    tmp_path.mkdir(parents=True, exist_ok=True)
    app = Flask(__name__, instance_path=str(tmp_path / "instance"))
    app.config.update(
        SECRET_KEY="test-secret",
        TESTING=True,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'views.db'}",
        CELERY_SQLITE_PATH=str(tmp_path / "celery.sqlite"),
        IMPORTER_ENABLED=True,
    )
    app.config.update(overrides)
    db.init_app(app)
    init_importer(app)
    with app.app_context():
        db.create_all()
    return app


def test_disabled_importer_has_no_routes(tmp_path):
    app = build_app(tmp_path, IMPORTER_ENABLED=False)

    assert "importer" not in app.blueprints
    assert app.test_client().get("/importer/health").status_code == 404


def test_health_reports_flags(tmp_path):
    app = build_app(tmp_path, IMPORTER_WORKER_ENABLED=True, CELERY_CONFIG=EAGER)

    response = app.test_client().get("/importer/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok", "enabled": True, "worker_enabled": True, "queue": "imports"}


def test_worker_health_endpoint_states(tmp_path):
    app = build_app(tmp_path)
    disabled_resp = app.test_client().get("/importer/worker_health")
    assert disabled_resp.status_code == 200
    disabled_payload = disabled_resp.get_json()
    assert disabled_payload["status"] == "disabled"
    assert disabled_payload["worker_enabled"] is False

    eager_app = build_app(tmp_path / "eager", IMPORTER_WORKER_ENABLED=True, CELERY_CONFIG=EAGER)
    ok_resp = eager_app.test_client().get("/importer/worker_health")
    assert ok_resp.status_code == 200
    ok_payload = ok_resp.get_json()
    assert ok_payload["status"] == "ok"
    assert ok_payload["heartbeat"]["status"] == "ok"


def test_job_detail_returns_progress(tmp_path):
    app = build_app(tmp_path)
    with app.app_context():
        job = ImportJob(content_type="company", total=2)
        db.session.add(job)
        db.session.commit()
        job_id = job.id
        JobProgressTracker().record_outcome(
            job_id, OutcomeDelta.succeeded(2, weight=100.0, inserted_ids=[3, 1], content_type="company")
        )
        JobProgressTracker().maybe_complete(job_id)

    response = app.test_client().get(f"/importer/jobs/{job_id}")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "done"
    assert payload["success"] == 2
    assert payload["inserted_ids"] == [1, 3]
    assert payload["content_type"] == "company"


def test_job_detail_missing_job_is_404(tmp_path):
    app = build_app(tmp_path)

    response = app.test_client().get("/importer/jobs/77")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Could not find import job 77"}
