# medtracker/tests/unit/test_timeslots.py
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from medtracker.core.timeslots import Clock, date_key, parse_time_slot


@pytest.mark.parametrize(
    "slot, expected",
    [("08:00", (8, 0)), ("14:30", (14, 30)), ("00:00", (0, 0)), ("23:59", (23, 59))],
)
def test_parse_valid_slots(slot, expected):
    assert parse_time_slot(slot) == expected


@pytest.mark.parametrize(
    "slot", ["", None, "8", "0800", "ab:cd", "8:00", "08:0", "24:00", "12:60", " 08:00", "08:00:00"]
)
def test_parse_invalid_slots_return_none(slot):
    assert parse_time_slot(slot) is None


def test_date_key_is_not_zero_padded():
    assert date_key(datetime(2025, 5, 3, 23, 59)) == "2025-5-3"
    assert date_key(datetime(2025, 12, 25, 0, 0)) == "2025-12-25"


def test_clock_today_key_uses_its_timezone():
    clock = Clock(ZoneInfo("Europe/Kyiv"))
    now = clock.now()
    assert now.tzinfo is not None
    assert clock.today_key() == f"{now.year}-{now.month}-{now.day}"
