"""Structured logging configuration for servicectl.

Provides JSON or text logging with contextual fields. Configure via the
environment variables handled by AppSettings (``SERVICECTL_LOG_LEVEL``,
``SERVICECTL_LOG_FORMAT``).
"""

from __future__ import annotations

import logging

from pythonjsonlogger import jsonlogger


def _build_json_formatter() -> logging.Formatter:
    fields = [
        "asctime",
        "levelname",
        "name",
        "message",
        "module",
        "funcName",
        "lineno",
    ]
    fmt = " ".join([f"%({f})s" for f in fields])
    return jsonlogger.JsonFormatter(fmt=fmt)


def configure_logging(level: str = "WARNING", fmt: str = "text") -> None:
    level_upper = level.upper()
    log_level = getattr(logging, level_upper, logging.WARNING)

    root = logging.getLogger()
    root.setLevel(log_level)

    # Remove default handlers to avoid duplicate logs
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    if fmt.lower() == "json":
        handler.setFormatter(_build_json_formatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
        )
    root.addHandler(handler)

    # Keep the HTTP client quiet unless we are debugging
    client_level = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for logger_name in ["httpx", "httpcore"]:
        logging.getLogger(logger_name).setLevel(client_level)
