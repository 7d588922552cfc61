# medtracker/tests/conftest.py
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# Project root is two levels up from here.
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medtracker.core.medicine import Medicine  # noqa: E402

TZ = ZoneInfo("Europe/Kyiv")


class FixedClock:
    """Clock stand-in; tests move it with set()."""

    def __init__(self, now: datetime):
        self.tz = now.tzinfo
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now


class FakeStore:
    """
    In-memory MedicineStore that records calls.
    Set fail_update / fail_replace to an exception (raised) or False (returned).
    """

    def __init__(self, medicines=None):
        self.docs = {m.id: m for m in (medicines or [])}
        self.calls = []
        self.fail_update = None
        self.fail_replace = None
        self.fail_list = None
        self._next_id = 1

    async def list_medicines(self, user_id):
        self.calls.append(("list", user_id))
        if self.fail_list is not None:
            raise self.fail_list
        return list(self.docs.values())

    async def create_medicine(self, user_id, medicine):
        self.calls.append(("create", user_id, medicine.name))
        mid = f"med-{self._next_id}"
        self._next_id += 1
        self.docs[mid] = replace(medicine, id=mid)
        return mid

    async def update_field(self, user_id, medicine_id, field_name, value):
        self.calls.append(("update", user_id, medicine_id, field_name))
        if isinstance(self.fail_update, Exception):
            raise self.fail_update
        if self.fail_update is False or medicine_id not in self.docs:
            return False
        m = self.docs[medicine_id]
        if field_name == "takenHistory":
            self.docs[medicine_id] = m.with_history(value)
        elif field_name == "active":
            self.docs[medicine_id] = replace(m, active=value)
        return True

    async def replace_document(self, user_id, medicine_id, medicine):
        self.calls.append(("replace", user_id, medicine_id))
        if isinstance(self.fail_replace, Exception):
            raise self.fail_replace
        if self.fail_replace is False:
            return False
        self.docs[medicine_id] = medicine
        return True

    async def archive(self, user_id, medicine_id):
        return await self.update_field(user_id, medicine_id, "active", False)

    def call_kinds(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def tz():
    return TZ


@pytest.fixture
def make_medicine():
    def _make(
        id="m1",
        name="Amoxicillin",
        times=("08:00", "20:00"),
        start=datetime(2025, 5, 3, 7, 0, tzinfo=TZ),
        duration_days=7,
        active=True,
        history=None,
        with_food=True,
    ):
        return Medicine(
            id=id,
            name=name,
            times=tuple(times),
            start_date=start,
            created_at=start,
            with_food=with_food,
            duration_days=duration_days,
            active=active,
            taken_history=history or {},
        )

    return _make


@pytest.fixture
def fixed_clock():
    return FixedClock(datetime(2025, 5, 3, 10, 0, tzinfo=TZ))


@pytest.fixture
def make_store():
    return FakeStore
