"""
CLI commands for the bulk importer: worker management, enqueueing an import
from a payload file, job status and cancellation.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
import yaml
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask.cli import ScriptInfo

from crm_app.importer.cancellation import broadcast_cancel, cancellation_registry
from crm_app.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from crm_app.importer.errors import ImporterError, JobNotFoundError
from crm_app.importer.pipeline import ImportJobService, JobRunner
from crm_app.utils.importer import is_importer_enabled


@click.group(name="importer")
@click.pass_context
def importer_cli(ctx):
    """Bulk importer management commands."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. " "Enable it to run importer CLI commands."
        )


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true and the "
            "importer package initialises before running worker commands."
        )
    return celery_app


def _load_payload_file(path: Path) -> dict:
    """Read an import definition from JSON or YAML (JSON is valid YAML)."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Could not parse {path}: {exc}") from exc

    if not isinstance(document, dict):
        raise click.ClickException(f"{path} must contain a mapping with 'recordKind', 'rows' and 'columnProperties'.")
    for key in ("recordKind", "rows", "columnProperties"):
        if key not in document:
            raise click.ClickException(f"{path} is missing '{key}'.")
    if not isinstance(document["rows"], list):
        raise click.ClickException("'rows' must be a list of rows.")
    return document


@importer_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the importer background worker."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    state = app.extensions.get("importer", {})
    if not state.get("worker_enabled") and not app.config.get("IMPORTER_WORKER_ENABLED"):
        click.echo(
            "Warning: IMPORTER_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option(
    "--pool",
    type=str,
    help="Celery pool implementation (e.g., 'solo', 'threads', 'prefork').",
)
@click.option(
    "--queues",
    default=DEFAULT_QUEUE_NAME,
    show_default=True,
    help="Comma-separated queue list to consume.",
)
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """
    Start the Celery worker in the current process.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)

    state = app.extensions.get("importer", {})
    if state is not None:
        state["worker_enabled"] = True

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    pool_msg = f", pool: {pool}" if pool else ""
    click.echo(f"Starting importer worker (queues: {queues}, loglevel: {loglevel}{pool_msg})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """
    Validate worker connectivity by executing the heartbeat task.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    except Exception as exc:  # pragma: no cover - surfacing unexpected errors
        raise click.ClickException(f"Worker ping failed: {exc}") from exc

    click.echo(json.dumps(payload, indent=2))


@importer_cli.command("enqueue")
@click.argument("payload_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--user-id", type=int, help="Acting user id recorded as owner and creator.")
@click.option("--scope-tag", "scope_tags", multiple=True, help="Scope tag applied to every record (repeatable).")
@click.option("--slice-size", type=int, help="Rows per bulk insert task (defaults to IMPORTER_SLICE_SIZE).")
@click.option(
    "--inline/--no-inline",
    default=False,
    help="Run slices in this process instead of queueing them on the worker.",
)
@click.pass_context
def enqueue_import(
    ctx,
    payload_file: Path,
    user_id: Optional[int],
    scope_tags: tuple[str, ...],
    slice_size: Optional[int],
    inline: bool,
):
    """
    Create an import job from PAYLOAD_FILE and split it into bulk insert slices.

    The file holds ``recordKind``, ``rows`` and ``columnProperties`` in JSON
    or YAML.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    document = _load_payload_file(payload_file)

    with app.app_context():
        service = ImportJobService()
        try:
            job = service.create_job(
                document["recordKind"],
                len(document["rows"]),
                triggered_by_user_id=user_id if user_id is not None else document.get("actingUserId"),
            )
        except ImporterError as exc:
            raise click.ClickException(str(exc)) from exc

        payloads = service.build_payloads(
            job,
            document["rows"],
            document["columnProperties"],
            acting_user_id=job.triggered_by_user_id,
            scope_tags=scope_tags or tuple(document.get("scopeTags") or ()),
            slice_size=slice_size,
        )

        if inline:
            runner = JobRunner()
            for payload in payloads:
                runner.run(payload)
            summary = service.get_job_summary(job.id)
            click.echo(
                f"Import job {job.id} finished with status {summary.status} "
                f"(success={summary.success}, failed={summary.failed}, total={summary.total})."
            )
            for message in summary.error_messages:
                click.echo(f"  error: {message}")
            return

        task_ids = service.enqueue(_resolve_celery(app), payloads)
        click.echo(f"Queued import job {job.id} as {len(task_ids)} slice(s) of {job.total} row(s).")


@importer_cli.command("status")
@click.argument("job_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print the job as JSON.")
@click.pass_context
def job_status(ctx, job_id: int, as_json: bool):
    """Show progress of an import job."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    with app.app_context():
        try:
            summary = ImportJobService().get_job_summary(job_id)
        except JobNotFoundError as exc:
            raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
        return

    click.echo(
        f"Import job {summary.id} ({summary.content_type}) is {summary.status}.\n"
        f"  total      : {summary.total}\n"
        f"  success    : {summary.success}\n"
        f"  failed     : {summary.failed}\n"
        f"  percentage : {summary.percentage:.1f}\n"
        f"  inserted   : {len(summary.inserted_ids)}"
    )
    for message in summary.error_messages:
        click.echo(f"  error: {message}")


@importer_cli.command("cancel")
@click.argument("job_id", type=int)
@click.option("--timeout", default=1.0, show_default=True, help="Seconds to wait for worker replies.")
@click.pass_context
def cancel_job(ctx, job_id: int, timeout: float):
    """Skip the slices of JOB_ID that have not started yet."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    with app.app_context():
        try:
            newly_cancelled = cancellation_registry.request_cancel(job_id)
        except JobNotFoundError as exc:
            raise click.ClickException(str(exc)) from exc

    replies = broadcast_cancel(celery_app, job_id, timeout=timeout) or []
    state = "Cancel requested" if newly_cancelled else "Cancel already requested"
    click.echo(f"{state} for import job {job_id}; {len(replies)} worker(s) acknowledged.")
