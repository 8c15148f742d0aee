# crm_app/utils/logging_config.py
"""
Application logging setup driven by the ``LOG_*`` config keys.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, including structured ``extra`` fields."""

    def __init__(self, app_name=None, app_version=None):
        super().__init__()
        self.app_name = app_name
        self.app_version = app_version

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if self.app_name:
            payload["app"] = self.app_name
        if self.app_version:
            payload["version"] = self.app_version

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _build_formatter(app):
    if str(app.config.get("LOG_FORMAT", "text")).lower() == "json":
        return JSONFormatter(app.config.get("APP_NAME"), app.config.get("APP_VERSION"))
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app):
    """
    (Re)configure ``app.logger`` handlers from config.

    Safe to call more than once; handlers added by a previous call are
    replaced rather than duplicated.
    """
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    formatter = _build_formatter(app)

    for handler in list(app.logger.handlers):
        if getattr(handler, "_crm_handler", False):
            app.logger.removeHandler(handler)
            handler.close()

    handlers = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        handlers.append(logging.StreamHandler())

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(log_dir, "crm_importer.log"),
                maxBytes=app.config.get("LOG_FILE_MAX_BYTES", 10485760),
                backupCount=app.config.get("LOG_FILE_BACKUP_COUNT", 10),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler._crm_handler = True
        app.logger.addHandler(handler)

    app.logger.setLevel(level)
    return app.logger
