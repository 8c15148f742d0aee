"""
Celery configuration helpers for the bulk import worker.

The Celery app is only built when the importer is enabled. Without an explicit
broker it falls back to a SQLite transport in the instance folder, which is
enough for local bulk imports.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from celery import Celery
from flask import Flask
from kombu import Queue

DEFAULT_QUEUE_NAME = "imports"
DEFAULT_SQLITE_FILENAME = "celery.sqlite"
TASK_MODULES = ("crm_app.importer.tasks",)


def _quiet_worker_loggers(app: Flask) -> None:
    """Quieten SQLAlchemy and Celery worker loggers unless echo is requested."""
    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    # One line per received task otherwise
    logging.getLogger("celery.worker.strategy").setLevel(logging.WARNING)


def _sqlite_transport_path(app: Flask) -> Path:
    """
    File backing the default SQLite broker and result backend.

    ``CELERY_SQLITE_PATH`` overrides it; relative paths resolve against the
    instance folder, which is created if needed.
    """
    configured = app.config.get("CELERY_SQLITE_PATH")
    sqlite_path = Path(configured) if configured else Path(DEFAULT_SQLITE_FILENAME)
    if not sqlite_path.is_absolute():
        sqlite_path = Path(app.instance_path) / sqlite_path

    sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite_path


def _connection_urls(app: Flask) -> tuple[str, str]:
    """Return ``(broker_url, result_backend)``, filling gaps with SQLite URLs."""
    broker_url = app.config.get("CELERY_BROKER_URL")
    result_backend = app.config.get("CELERY_RESULT_BACKEND")
    if broker_url and result_backend:
        return broker_url, result_backend

    # Celery expects forward slashes even on Windows.
    location = _sqlite_transport_path(app).as_posix()
    return broker_url or f"sqla+sqlite:///{location}", result_backend or f"db+sqlite:///{location}"


def _extra_conf(app: Flask) -> Mapping[str, Any] | None:
    extra_conf: Mapping[str, Any] | str | None = app.config.get("CELERY_CONFIG")
    if isinstance(extra_conf, str):
        try:
            extra_conf = json.loads(extra_conf)
        except json.JSONDecodeError:
            app.logger.warning("CELERY_CONFIG is not valid JSON; ignoring value.", exc_info=True)
            return None
    return extra_conf or None


def create_celery_app(app: Flask) -> Celery:
    """
    Build the importer Celery app bound to ``app``.

    Tasks run inside an application context so they can use ``db.session``
    and ``current_app``. Bulk-insert slices are acked late and prefetched one
    at a time, so a crashed worker hands its slice to another one.
    """
    broker_url, result_backend = _connection_urls(app)
    celery_app = Celery(app.import_name, broker=broker_url, backend=result_backend, include=TASK_MODULES)

    celery_app.conf.update(
        task_default_queue=DEFAULT_QUEUE_NAME,
        task_queues=[Queue(DEFAULT_QUEUE_NAME)],
        task_default_exchange=DEFAULT_QUEUE_NAME,
        task_default_routing_key=DEFAULT_QUEUE_NAME,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_track_started=True,
        result_extended=True,
        broker_connection_retry_on_startup=True,
        task_time_limit=app.config.get("IMPORTER_TASK_TIME_LIMIT", 15 * 60),
        task_soft_time_limit=app.config.get("IMPORTER_TASK_SOFT_TIME_LIMIT", 12 * 60),
        worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
        worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s",
        worker_hijack_root_logger=False,
    )

    extra_conf = _extra_conf(app)
    app.logger.info(
        "Importer Celery configuration resolved",
        extra={
            "importer_celery_extra_conf": extra_conf,
            "importer_celery_broker_url": broker_url,
            "importer_celery_result_backend": result_backend,
            "importer_worker_enabled": app.config.get("IMPORTER_WORKER_ENABLED"),
        },
    )
    if extra_conf:
        celery_app.conf.update(extra_conf)

    _quiet_worker_loggers(app)

    class FlaskContextTask(celery_app.Task):  # type: ignore[misc]
        """Run every importer task inside a Flask application context."""

        def __call__(self, *args, **kwargs):
            with app.app_context():
                return super().__call__(*args, **kwargs)

    celery_app.Task = FlaskContextTask  # type: ignore[assignment]
    celery_app.loader.import_default_modules()
    return celery_app


def ensure_celery_app(app: Flask, state: dict[str, Any]) -> Celery:
    """Return the Celery app cached on the importer extension state, creating it once."""
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None:
        celery_app = create_celery_app(app)
        state["celery_app"] = celery_app
    return celery_app


def get_celery_app(app: Flask) -> Celery | None:
    """
    Celery app of an enabled importer, or ``None`` when the importer is off.
    """
    state: dict[str, Any] | None = app.extensions.get("importer")  # type: ignore[arg-type]
    if not state:
        return None
    celery_app: Celery | None = state.get("celery_app")
    if celery_app is None and state.get("enabled"):
        celery_app = ensure_celery_app(app, state)
    return celery_app
