"""
Logging setup shared by the API and the console importer.

Import workers run in threads named ``import-worker_N``, so the thread name is
part of every line. Per-row worker messages live on their own logger and can
be turned up without flooding the rest of the application.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

WORKER_LOGGER = "app.domain.imports.workers"

# Third-party loggers that are too chatty at INFO during a bulk import
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "httpx")

_is_configured = False


def build_logging_config(level: str = "INFO", worker_level: Optional[str] = None) -> Dict[str, Any]:
    """Return the ``dictConfig`` mapping for the given levels."""
    log_level = level.upper()
    loggers: Dict[str, Dict[str, Any]] = {
        "app": {"level": log_level},
        WORKER_LOGGER: {"level": (worker_level or log_level).upper()},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": "DEBUG",
            }
        },
        "loggers": loggers,
        "root": {
            "handlers": ["console"],
            "level": log_level,
        },
    }


def configure_logging(
    level: Optional[str] = None,
    worker_level: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Install the logging configuration once per process.

    Args:
        level: Level for the root and ``app`` loggers (default INFO)
        worker_level: Level for per-row worker messages (defaults to ``level``)
        force: Reconfigure even if logging was already set up
    """
    global _is_configured

    if _is_configured and not force:
        return

    dictConfig(build_logging_config(level or "INFO", worker_level))
    logging.getLogger(__name__).debug(
        "Logging configured (level=%s, worker_level=%s)", level or "INFO", worker_level or level or "INFO"
    )

    _is_configured = True
