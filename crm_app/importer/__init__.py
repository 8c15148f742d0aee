"""
Bulk importer feature package.

Registers the importer blueprint, CLI group and Celery app when
``IMPORTER_ENABLED`` is set, and stays out of the way otherwise.
"""

from __future__ import annotations

from flask import Flask

from crm_app.utils.importer import is_importer_enabled, is_worker_enabled

from .celery_app import ensure_celery_app, get_celery_app

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "init_importer",
    "IMPORTER_EXTENSION_KEY",
    "get_celery_app",
]


def _ensure_extension_state(app: Flask) -> dict:
    return app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {
            "enabled": False,
            "worker_enabled": False,
            "celery_app": None,
        },
    )


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    from .cli import get_disabled_importer_group, importer_cli

    # Avoid duplicate registrations when running tests
    if importer_cli.name in app.cli.commands:
        app.cli.commands.pop(importer_cli.name)

    if enabled:
        app.cli.add_command(importer_cli)
    else:
        app.cli.add_command(get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """
    Conditionally mount importer blueprint, CLI and Celery app.

    State is kept in ``app.extensions['importer']`` for the CLI, the views and
    the side-effect dispatcher.
    """
    from .views import importer_blueprint

    enabled = is_importer_enabled(app)
    state = _ensure_extension_state(app)
    state.update(
        {
            "enabled": enabled,
            "worker_enabled": is_worker_enabled(app),
        }
    )

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Importer disabled via IMPORTER_ENABLED flag; skipping registration.")
        return

    ensure_celery_app(app, state)

    if importer_blueprint.name not in app.blueprints and not getattr(app, "_got_first_request", False):
        app.register_blueprint(importer_blueprint)
    elif importer_blueprint.name not in app.blueprints:
        app.logger.warning(
            "Importer blueprint registration skipped because the app has already handled its first request."
        )
    _set_cli(app, enabled=True)
    app.logger.info(
        "Importer enabled",
        extra={"importer_worker_enabled": state["worker_enabled"]},
    )
