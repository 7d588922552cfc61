# medtracker/core/medicine.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from medtracker.core.logging_utils import kv
from medtracker.core.timeslots import date_key

log = logging.getLogger("medtracker.medicine")

DEFAULT_DURATION_DAYS = 7

# Field names of the stored medicine document
FIELD_NAME = "name"
FIELD_TIMES = "times"
FIELD_WITH_FOOD = "withFood"
FIELD_DURATION_DAYS = "durationDays"
FIELD_START_DATE = "startDate"
FIELD_CREATED_AT = "createdAt"
FIELD_ACTIVE = "active"
FIELD_TAKEN_HISTORY = "takenHistory"

TakenHistory = Mapping[str, Mapping[str, bool]]


class TakenStatus(str, Enum):
    TAKEN = "taken"
    SKIPPED = "skipped"
    UNRECORDED = "unrecorded"


@dataclass(frozen=True)
class Medicine:
    """
    A prescribed medication schedule owned by one user.

    ``taken_history`` maps a date key (see ``date_key``) to {slot: taken}.
    A missing date or slot means no action was recorded, which is different
    from an explicit skip (False).
    """

    id: str
    name: str
    times: Tuple[str, ...]
    start_date: datetime
    created_at: datetime
    with_food: bool = True
    duration_days: int = DEFAULT_DURATION_DAYS
    active: bool = True
    taken_history: TakenHistory = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.times, tuple):
            object.__setattr__(self, "times", tuple(self.times))

    # -- derivations ----------------------------------------------------
    @property
    def end_date(self) -> datetime:
        return self.start_date + timedelta(days=self.duration_days)

    def is_active(self, now: datetime) -> bool:
        if not self.times or not self.active:
            return False
        # The end instant itself still counts as active
        return now <= self.end_date

    def days_remaining(self, now: datetime) -> int:
        if now > self.end_date:
            return 0
        return (self.end_date - now) // timedelta(days=1)

    def taken_status(self, time_slot: str, now: datetime) -> TakenStatus:
        day = self.taken_history.get(date_key(now))
        if day is None or time_slot not in day:
            return TakenStatus.UNRECORDED
        return TakenStatus.TAKEN if day[time_slot] else TakenStatus.SKIPPED

    def adherence_rate(self) -> float:
        total = 0
        taken = 0
        for slots in self.taken_history.values():
            for value in slots.values():
                total += 1
                if value:
                    taken += 1
        if total == 0:
            return 1.0
        return taken / total

    # -- copies ---------------------------------------------------------
    def with_history(self, taken_history: TakenHistory) -> "Medicine":
        return replace(self, taken_history=taken_history)

    def archived(self) -> "Medicine":
        return replace(self, active=False)

    # -- document form --------------------------------------------------
    def to_document(self) -> Dict[str, Any]:
        return {
            FIELD_NAME: self.name,
            FIELD_TIMES: list(self.times),
            FIELD_WITH_FOOD: self.with_food,
            FIELD_DURATION_DAYS: self.duration_days,
            FIELD_START_DATE: self.start_date,
            FIELD_CREATED_AT: self.created_at,
            FIELD_ACTIVE: self.active,
            FIELD_TAKEN_HISTORY: copy_history(self.taken_history),
        }

    @classmethod
    def from_document(
        cls, doc_id: str, data: Mapping[str, Any], now: Optional[datetime] = None
    ) -> "Medicine":
        """
        Build a Medicine from a stored document, filling the defaults used for
        records written by older clients (withFood=True, durationDays=7, active=True).
        """
        now = now or datetime.now(timezone.utc)
        raw_times = data.get(FIELD_TIMES) or []
        if not isinstance(raw_times, (list, tuple)):
            raw_times = [raw_times]
        times = tuple(t for t in raw_times if isinstance(t, str))
        if len(times) != len(raw_times):
            log.warning(
                "medicine.doc.times.dropped "
                + kv(medicine_id=doc_id, raw=list(raw_times))
            )

        duration = data.get(FIELD_DURATION_DAYS)
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            duration = DEFAULT_DURATION_DAYS

        with_food = data.get(FIELD_WITH_FOOD)
        active = data.get(FIELD_ACTIVE)

        return cls(
            id=doc_id,
            name=str(data.get(FIELD_NAME) or ""),
            times=times,
            with_food=with_food if isinstance(with_food, bool) else True,
            duration_days=int(duration),
            start_date=_as_instant(data.get(FIELD_START_DATE), now),
            created_at=_as_instant(data.get(FIELD_CREATED_AT), now),
            active=active if isinstance(active, bool) else True,
            taken_history=_parse_history(doc_id, data.get(FIELD_TAKEN_HISTORY)),
        )


def copy_history(history: TakenHistory) -> Dict[str, Dict[str, bool]]:
    return {day: dict(slots) for day, slots in history.items()}


def _as_instant(value: Any, default: datetime) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return default
    if not isinstance(value, datetime):
        return default
    if value.tzinfo is None:
        # Stored timestamps are UTC
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_history(doc_id: str, raw: Any) -> Dict[str, Dict[str, bool]]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        log.error("medicine.doc.history.invalid " + kv(medicine_id=doc_id, raw=raw))
        return {}
    history: Dict[str, Dict[str, bool]] = {}
    for day, slots in raw.items():
        if not isinstance(slots, Mapping):
            log.warning(
                "medicine.doc.history.skip " + kv(medicine_id=doc_id, day=day)
            )
            continue
        history[str(day)] = {
            str(slot): value for slot, value in slots.items() if isinstance(value, bool)
        }
    return history


__all__ = ["Medicine", "TakenStatus", "copy_history", "date_key"]
