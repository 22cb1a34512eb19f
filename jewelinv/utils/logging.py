from __future__ import annotations

import logging
import sys
import time
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path

from flask import Flask, current_app, g, has_request_context, request

LOG_FORMAT = "%(asctime)s [%(levelname)s] [req=%(request_id)s user=%(username)s] %(name)s: %(message)s"
LOG_FILENAME = "jewelinv.log"
REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextFilter(logging.Filter):
    """Stamp every record with the request id and the acting username."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = None
        username = None
        if has_request_context():
            request_id = g.get("request_id")
            username = g.get("log_username")
        record.request_id = request_id or "-"
        record.username = username or "-"
        return True


def _prepare(handler: logging.Handler, level: int, request_filter: logging.Filter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(request_filter)
    return handler


def _log_level(app: Flask) -> int:
    name = str(app.config.get("LOG_LEVEL") or "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app: Flask) -> Path | None:
    """Send logs to stdout and, when ``LOG_DIR`` is set, a rotating file.

    Returns the log file path, or ``None`` when file logging is off.
    """

    level = _log_level(app)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    request_filter = RequestContextFilter()

    if not any(type(handler) is logging.StreamHandler for handler in root_logger.handlers):
        root_logger.addHandler(_prepare(logging.StreamHandler(sys.stdout), level, request_filter))

    log_path = None
    if app.config.get("LOG_DIR"):
        logs_dir = Path(app.config["LOG_DIR"])
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = (logs_dir / LOG_FILENAME).resolve()
        already_attached = any(
            isinstance(handler, RotatingFileHandler) and handler.baseFilename == str(log_path)
            for handler in root_logger.handlers
        )
        if not already_attached:
            file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=5)
            root_logger.addHandler(_prepare(file_handler, level, request_filter))

    # Handlers added by pytest or gunicorn still need the extra record fields.
    for handler in root_logger.handlers + app.logger.handlers:
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters):
            handler.addFilter(request_filter)

    app.logger.setLevel(level)
    for name in ("werkzeug", "gunicorn.error", "gunicorn.access"):
        logging.getLogger(name).setLevel(level)

    return log_path


def register_request_logging(app: Flask) -> None:
    """Tag each request with an id and log one line when it completes."""

    @app.before_request
    def _tag_request():
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        g.request_started = time.monotonic()

    @app.after_request
    def _log_request(response):
        response.headers[REQUEST_ID_HEADER] = g.get("request_id", "-")
        if not request.endpoint or request.method == "OPTIONS":
            return response

        elapsed_ms = (time.monotonic() - g.get("request_started", time.monotonic())) * 1000
        current_app.logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.path,
            response.status_code,
            elapsed_ms,
        )
        return response
