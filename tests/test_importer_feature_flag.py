import json

from flask import Flask

from crm_app.importer import IMPORTER_EXTENSION_KEY, get_celery_app, init_importer


def build_app(tmp_path, enabled=False, **overrides):
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY="test-secret",
        TESTING=True,
        IMPORTER_ENABLED=enabled,
        CELERY_SQLITE_PATH=str(tmp_path / "celery.sqlite"),
    )
    app.config.update(overrides)

    init_importer(app)
    return app


def test_importer_disabled_registers_stub_cli(tmp_path):
    app = build_app(tmp_path, enabled=False)

    assert "importer" not in app.blueprints
    assert get_celery_app(app) is None
    assert app.extensions[IMPORTER_EXTENSION_KEY]["enabled"] is False

    runner = app.test_cli_runner()
    result = runner.invoke(args=["importer"])
    assert result.exit_code != 0
    assert "Importer commands are unavailable" in result.output


def test_importer_enabled_registers_blueprint_cli_and_celery(tmp_path):
    app = build_app(tmp_path, enabled=True, IMPORTER_WORKER_ENABLED=True)

    assert "importer" in app.blueprints
    assert "importer.importer_healthcheck" in app.view_functions
    assert "importer.importer_job_detail" in app.view_functions

    client = app.test_client()
    response = client.get("/importer/health")
    assert response.status_code == 200
    payload = json.loads(response.data)
    assert payload["enabled"] is True
    assert payload["worker_enabled"] is True

    runner = app.test_cli_runner()
    result = runner.invoke(args=["importer", "--help"])
    assert result.exit_code == 0
    for command in ("enqueue", "status", "cancel", "worker"):
        assert command in result.output

    importer_state = app.extensions[IMPORTER_EXTENSION_KEY]
    assert importer_state["enabled"] is True
    assert importer_state["celery_app"] is get_celery_app(app)


def test_init_importer_is_idempotent(tmp_path):
    app = build_app(tmp_path, enabled=True)
    celery_app = get_celery_app(app)

    init_importer(app)

    assert get_celery_app(app) is celery_app
    assert list(app.blueprints) == ["importer"]
