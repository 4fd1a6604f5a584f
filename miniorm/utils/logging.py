"""
Logging setup shared by the CLI, the executor, the pipelines and the
migration engine.

Library modules never configure logging themselves; they only obtain a named
logger and attach structured context through ``extra=``. Applications (or
the ``miniorm`` CLI) call `configure_logging` once, choosing between a
one-line console format and JSON lines.

Usage:
    from miniorm.utils.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", json_logs=True)
    log = get_logger(__name__)
    log.debug("Flushed insert batch", extra={"table": "person", "start": 0, "end": 100})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

LIBRARY_LOGGER = "miniorm"
DRIVER_LOGGERS = ("psycopg", "psycopg.pool")

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}

_CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def _json_formatter(record: logging.LogRecord) -> str:
    """Serialize one record, lifting its `extra=` context to top-level keys."""
    payload: Dict[str, Any] = {
        "ts": round(record.created, 3),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update(
        (key, value)
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    )
    # Older call sites pass a single nested dict as extra={"extra": {...}}.
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        payload.update(nested)
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """Emit each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
    driver_level: str = "WARNING",
) -> None:
    """
    Install a single stderr handler on the root logger.

    Parameters
    ----------
    level : str
        Level for the root and ``miniorm`` loggers.
    json_logs : bool
        JSON lines instead of the console format.
    force : bool
        When False, leave an already configured root logger untouched.
    driver_level : str
        Level for the psycopg and psycopg.pool loggers, which are chatty at
        DEBUG while the pool grows and shrinks.
    """
    if not force and logging.getLogger().handlers:
        return
    level = level.upper()
    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": _CONSOLE_FORMAT, "datefmt": "%H:%M:%S"},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "json" if json_logs else "console",
            }
        },
        "loggers": {LIBRARY_LOGGER: {"level": level}},
        "root": {"handlers": ["stderr"], "level": level},
    }
    for name in DRIVER_LOGGERS:
        config["loggers"][name] = {"level": driver_level.upper()}
    logging.config.dictConfig(config)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Named logger; the root logger when `name` is None."""
    return logging.getLogger(name)


__all__ = ["LIBRARY_LOGGER", "JsonFormatter", "configure_logging", "get_logger"]
