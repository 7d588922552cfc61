# medtracker/core/logging_utils.py
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "medtracker"
AUDIT_FORMAT = "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s"
CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(message)s"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def level_number(name: str) -> int:
    """Map a level name like "info" to its logging constant; ValueError if unknown."""
    level = logging.getLevelName(str(name).upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level {name!r}")
    return level


def _audit_handler(cfg: Any, level: int) -> logging.Handler:
    path = Path(cfg.AUDIT_LOG_FILE)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=getattr(cfg, "LOG_MAX_BYTES", 1_000_000),
        backupCount=getattr(cfg, "LOG_BACKUP_COUNT", 10),
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(AUDIT_FORMAT, TIME_FORMAT))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, TIME_FORMAT))
    return handler


def setup_logging(cfg: Any) -> logging.Logger:
    """
    Attach a console handler and a rotating audit-file handler to the
    "medtracker" logger. Levels and rotation come from ``cfg``.

    The audit file is where dose actions and store fallbacks end up, so it
    normally runs a level below the console.
    """
    file_level = level_number(getattr(cfg, "LOG_LEVEL_FILE", "DEBUG"))
    console_level = level_number(getattr(cfg, "LOG_LEVEL_CONSOLE", "INFO"))
    handlers = [_audit_handler(cfg, file_level), _console_handler(console_level)]

    logger = logging.getLogger(LOGGER_NAME)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(min(h.level for h in handlers))
    return logger


def kv(**kwargs: Any) -> str:
    """Render event fields as key=repr(value) pairs, in call order."""
    return " ".join(f"{k}={v!r}" for k, v in kwargs.items())


__all__ = ["kv", "level_number", "setup_logging"]
