# medtracker/core/validation.py
from __future__ import annotations

from typing import Any, Iterable
from zoneinfo import ZoneInfo

from medtracker.core.logging_utils import level_number
from medtracker.core.timeslots import is_valid_time_slot


def validate_config(cfg: Any) -> None:
    """Validate runtime configuration before starting the runner."""
    tz = getattr(cfg, "TZ", None)
    if not isinstance(tz, ZoneInfo):
        raise ValueError("TZ must be a zoneinfo.ZoneInfo")

    dsn = getattr(cfg, "DB_DSN", None)
    if not isinstance(dsn, str) or "://" not in dsn:
        raise ValueError("DB_DSN must be a SQLAlchemy URL, e.g. 'mysql+aiomysql://...'")

    refresh = getattr(cfg, "REFRESH_SECONDS", None)
    if not isinstance(refresh, int) or refresh < 60:
        raise ValueError("REFRESH_SECONDS must be an integer >= 60")

    hh = getattr(cfg, "SUMMARY_CRON_HOUR", None)
    mm = getattr(cfg, "SUMMARY_CRON_MINUTE", None)
    if not isinstance(hh, int) or not isinstance(mm, int):
        raise ValueError("SUMMARY_CRON_HOUR/SUMMARY_CRON_MINUTE must be integers")
    if not (0 <= hh <= 23 and 0 <= mm <= 59):
        raise ValueError(f"invalid summary time {hh}:{mm}")

    if not getattr(cfg, "AUDIT_LOG_FILE", None):
        raise ValueError("AUDIT_LOG_FILE must be set")

    for attr in ("LOG_LEVEL_CONSOLE", "LOG_LEVEL_FILE"):
        level_number(getattr(cfg, attr, None))

    max_bytes = getattr(cfg, "LOG_MAX_BYTES", None)
    if isinstance(max_bytes, bool) or not isinstance(max_bytes, int) or max_bytes <= 0:
        raise ValueError("LOG_MAX_BYTES must be a positive integer")
    backups = getattr(cfg, "LOG_BACKUP_COUNT", None)
    if isinstance(backups, bool) or not isinstance(backups, int) or backups < 1:
        raise ValueError("LOG_BACKUP_COUNT must be an integer >= 1")


def validate_new_medicine(name: str, times: Iterable[str], duration_days: int) -> None:
    """Reject a prescription that could never show up in a schedule."""
    if not str(name or "").strip():
        raise ValueError("medicine name must be non-empty")

    slots = list(times)
    if not slots:
        raise ValueError("please add at least one time slot")

    seen: set[str] = set()
    for t in slots:
        if not is_valid_time_slot(t):
            raise ValueError(f"invalid time slot '{t}' (expected HH:MM)")
        if t in seen:
            raise ValueError(f"duplicate time slot '{t}'")
        seen.add(t)

    if isinstance(duration_days, bool) or not isinstance(duration_days, int):
        raise ValueError("duration_days must be an integer")
    if duration_days <= 0:
        raise ValueError("duration_days must be positive")
