# medtracker/core/timeslots.py
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")


class Clock:
    """Injectable, testable clock bound to a timezone."""

    def __init__(self, tz: ZoneInfo):
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today_key(self) -> str:
        return date_key(self.now())


def parse_time_slot(slot: str | None) -> Optional[Tuple[int, int]]:
    """
    Parse a dose slot in strict HH:MM (zero-padded, 24h) form.
    Returns (hour, minute), or None for anything else.
    """
    if not slot:
        return None
    m = _TIME_RE.match(slot)
    if not m:
        return None
    hh, mm = int(m.group(1)), int(m.group(2))
    if not (0 <= hh <= 23 and 0 <= mm <= 59):
        return None
    return hh, mm


def is_valid_time_slot(slot: str | None) -> bool:
    return parse_time_slot(slot) is not None


def date_key(instant: datetime) -> str:
    """
    History key for the calendar date of ``instant``: YYYY-M-D, month and day
    NOT zero-padded (e.g. "2025-5-3"). Stored documents depend on this exact form.
    """
    return f"{instant.year}-{instant.month}-{instant.day}"


__all__ = [
    "Clock",
    "parse_time_slot",
    "is_valid_time_slot",
    "date_key",
]
