# medtracker/core/schedule.py
"""
Schedule views over a snapshot of one user's medicines.

Everything here is pure: callers pass the snapshot and "now", and get plain
values back. A malformed dose slot on one medicine is logged and skipped so it
never blanks out the rest of the view.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple

from medtracker.core.logging_utils import kv
from medtracker.core.medicine import Medicine, TakenStatus, copy_history
from medtracker.core.timeslots import date_key, parse_time_slot

log = logging.getLogger("medtracker.schedule")


class ScheduleEntry(NamedTuple):
    time_slot: str
    is_past: bool


class AdherenceStats(NamedTuple):
    taken: int
    total: int


class DoseState(str, Enum):
    TAKEN = "taken"
    SKIPPED = "skipped"
    NEEDS_ACTION = "needs_action"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class DoseRow:
    medicine: Medicine
    time_slot: str
    is_past: bool
    state: DoseState


@dataclass(frozen=True)
class DaySummary:
    day: str
    active_medicines: int
    slots: int
    past_slots: int
    upcoming_slots: int
    taken: int
    skipped: int
    needs_action: int
    next_slot: Optional[str]


# -- helpers ----------------------------------------------------------------------------
def _valid_slots(medicine: Medicine) -> Iterator[Tuple[str, Tuple[int, int]]]:
    """Yield (raw_slot, (hour, minute)) for each parseable slot; log the rest."""
    for slot in medicine.times:
        hm = parse_time_slot(slot)
        if hm is None:
            log.warning(
                "schedule.slot.invalid "
                + kv(medicine_id=medicine.id, name=medicine.name, slot=slot)
            )
            continue
        yield slot, hm


def _group_by_slot(
    medicines: Iterable[Medicine],
) -> List[Tuple[str, Tuple[int, int], List[Medicine]]]:
    """(slot, (hour, minute), medicines) per distinct slot, in time order."""
    groups: Dict[str, Tuple[Tuple[int, int], List[Medicine]]] = {}
    for med in medicines:
        for slot, hm in _valid_slots(med):
            groups.setdefault(slot, (hm, []))[1].append(med)
    ordered = sorted(groups.items(), key=lambda item: item[1][0])
    return [(slot, hm, meds) for slot, (hm, meds) in ordered]


def _is_past(hm: Tuple[int, int], now: datetime) -> bool:
    # A slot whose minute has arrived counts as past; seconds are ignored
    return hm <= (now.hour, now.minute)


# -- aggregator -------------------------------------------------------------------------
def get_today_schedule(
    medicines: Iterable[Medicine], now: datetime
) -> List[ScheduleEntry]:
    """
    Unique dose slots of today across all ACTIVE medicines, time-ordered.

    Slots are deduplicated by their raw string, so two medicines due at "08:00"
    produce a single entry.
    """
    seen: Dict[str, Tuple[int, int]] = {}
    for med in medicines:
        if not med.is_active(now):
            continue
        for slot, hm in _valid_slots(med):
            seen.setdefault(slot, hm)

    ordered = sorted(seen.items(), key=lambda item: item[1])
    schedule = [ScheduleEntry(slot, _is_past(hm, now)) for slot, hm in ordered]
    log.debug(
        "schedule.today " + kv(day=date_key(now), slots=[e.time_slot for e in schedule])
    )
    return schedule


def get_medicines_by_time_slot(
    medicines: Iterable[Medicine],
) -> Dict[str, List[Medicine]]:
    """
    Group medicines under each of their dose slots, slots in time order.

    Unlike ``get_today_schedule`` this includes archived and expired medicines.
    """
    return {slot: meds for slot, _, meds in _group_by_slot(medicines)}


def record_dose_action(
    medicine: Medicine, time_slot: str, taken: bool, now: datetime
) -> Medicine:
    """
    Return a copy of ``medicine`` with today's ``time_slot`` set to taken/skipped.

    Only that single (date, slot) entry changes. Repeating the call is a no-op;
    a later call with the other value wins. ``time_slot`` is not checked
    against ``medicine.times``.
    """
    history = copy_history(medicine.taken_history)
    history.setdefault(date_key(now), {})[time_slot] = taken
    return medicine.with_history(history)


def get_medicine_adherence_stats(medicine: Medicine) -> AdherenceStats:
    taken = 0
    total = 0
    for slots in medicine.taken_history.values():
        for value in slots.values():
            total += 1
            if value:
                taken += 1
    return AdherenceStats(taken, total)


# -- per-dose views ---------------------------------------------------------------------
def dose_state(
    medicine: Medicine, time_slot: str, is_past: bool, now: datetime
) -> DoseState:
    status = medicine.taken_status(time_slot, now)
    if status is TakenStatus.TAKEN:
        return DoseState.TAKEN
    if status is TakenStatus.SKIPPED:
        return DoseState.SKIPPED
    return DoseState.NEEDS_ACTION if is_past else DoseState.UPCOMING


def get_today_doses(medicines: Iterable[Medicine], now: datetime) -> List[DoseRow]:
    """One row per (medicine, slot) for the detail list, in slot then name order."""
    rows: List[DoseRow] = []
    for slot, hm, meds in _group_by_slot(medicines):
        past = _is_past(hm, now)
        for med in sorted(meds, key=lambda m: m.name.lower()):
            rows.append(DoseRow(med, slot, past, dose_state(med, slot, past, now)))
    return rows


def next_dose(medicines: Iterable[Medicine], now: datetime) -> Optional[ScheduleEntry]:
    for entry in get_today_schedule(medicines, now):
        if not entry.is_past:
            return entry
    return None


def summarize_today(medicines: Iterable[Medicine], now: datetime) -> DaySummary:
    active = [m for m in medicines if m.is_active(now)]
    schedule = get_today_schedule(active, now)
    past = sum(1 for e in schedule if e.is_past)

    counts = {state: 0 for state in DoseState}
    for row in get_today_doses(active, now):
        counts[row.state] += 1

    upcoming = next((e.time_slot for e in schedule if not e.is_past), None)
    return DaySummary(
        day=date_key(now),
        active_medicines=len(active),
        slots=len(schedule),
        past_slots=past,
        upcoming_slots=len(schedule) - past,
        taken=counts[DoseState.TAKEN],
        skipped=counts[DoseState.SKIPPED],
        needs_action=counts[DoseState.NEEDS_ACTION],
        next_slot=upcoming,
    )


__all__ = [
    "ScheduleEntry",
    "AdherenceStats",
    "DoseState",
    "DoseRow",
    "DaySummary",
    "get_today_schedule",
    "get_medicines_by_time_slot",
    "record_dose_action",
    "get_medicine_adherence_stats",
    "dose_state",
    "get_today_doses",
    "next_dose",
    "summarize_today",
]
