# medtracker/tests/integration/test_service_flow.py
import asyncio
from datetime import timedelta

import pytest

from medtracker.core.medicine import TakenStatus
from medtracker.service import MedicineNotFound, MedicineService, StoreError


def make_service(store, clock):
    return MedicineService(store, "user-1", clock)


@pytest.mark.asyncio
async def test_refresh_puts_active_first(make_medicine, make_store, fixed_clock):
    store = make_store(
        [make_medicine(id="old", active=False), make_medicine(id="new", active=True)]
    )
    svc = make_service(store, fixed_clock)
    meds = await svc.refresh()
    assert [m.id for m in meds] == ["new", "old"]


@pytest.mark.asyncio
async def test_add_medicine_then_schedule(make_store, fixed_clock):
    store = make_store()
    svc = make_service(store, fixed_clock)
    created = await svc.add_medicine("Amoxicillin", ["20:00", "08:00"], duration_days=7)
    assert created.id == "med-1"
    assert created.start_date == fixed_clock.now()
    assert created.taken_history == {}
    assert [m.id for m in svc.medicines] == ["med-1"]
    assert svc.today_schedule() == [("08:00", True), ("20:00", False)]
    assert svc.next_dose() == ("20:00", False)


@pytest.mark.asyncio
async def test_add_medicine_rejects_empty_times(make_store, fixed_clock):
    store = make_store()
    svc = make_service(store, fixed_clock)
    with pytest.raises(ValueError):
        await svc.add_medicine("Amoxicillin", [])
    assert store.calls == []


@pytest.mark.asyncio
async def test_mark_dose_updates_field_and_refetches(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1")])
    svc = make_service(store, fixed_clock)
    await svc.refresh()

    updated = await svc.mark_dose("m1", "08:00", False)

    assert updated.taken_status("08:00", fixed_clock.now()) is TakenStatus.SKIPPED
    assert store.call_kinds() == ["list", "update", "list"]
    assert store.docs["m1"].taken_history == {"2025-5-3": {"08:00": False}}
    assert svc.get("m1").taken_status("08:00", fixed_clock.now()) is TakenStatus.SKIPPED

    fixed_clock.set(fixed_clock.now() + timedelta(days=1))
    assert svc.get("m1").taken_status("08:00", fixed_clock.now()) is TakenStatus.UNRECORDED


@pytest.mark.asyncio
async def test_mark_dose_unknown_id(make_store, fixed_clock):
    store = make_store()
    svc = make_service(store, fixed_clock)
    with pytest.raises(MedicineNotFound):
        await svc.mark_dose("missing", "08:00", True)
    assert store.calls == []


@pytest.mark.asyncio
async def test_update_failure_falls_back_to_replace(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1")])
    store.fail_update = RuntimeError("document missing")
    svc = make_service(store, fixed_clock)
    await svc.refresh()

    await svc.mark_dose("m1", "08:00", True)

    assert store.call_kinds() == ["list", "update", "replace", "list"]
    assert store.docs["m1"].taken_history == {"2025-5-3": {"08:00": True}}


@pytest.mark.asyncio
async def test_update_miss_falls_back_to_replace(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1")])
    store.fail_update = False
    svc = make_service(store, fixed_clock)
    await svc.refresh()

    await svc.mark_dose("m1", "20:00", True)
    assert "replace" in store.call_kinds()


@pytest.mark.asyncio
async def test_both_writes_fail_reconciles_and_raises(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1")])
    store.fail_update = RuntimeError("offline")
    store.fail_replace = RuntimeError("offline")
    svc = make_service(store, fixed_clock)
    await svc.refresh()

    with pytest.raises(StoreError):
        await svc.mark_dose("m1", "08:00", True)

    assert store.call_kinds() == ["list", "update", "replace", "list"]
    # re-fetch brought back the stored (unchanged) history
    assert svc.get("m1").taken_status("08:00", fixed_clock.now()) is TakenStatus.UNRECORDED


@pytest.mark.asyncio
async def test_archive_drops_from_schedule_but_not_grouping(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1", times=("08:00",))])
    svc = make_service(store, fixed_clock)
    await svc.refresh()

    await svc.archive("m1")

    assert store.docs["m1"].active is False
    assert svc.today_schedule() == []
    assert list(svc.medicines_by_time_slot()) == ["08:00"]


@pytest.mark.asyncio
async def test_adherence_stats_via_service(make_medicine, make_store, fixed_clock):
    store = make_store(
        [make_medicine(id="m1", history={"2025-5-2": {"08:00": True, "20:00": False}})]
    )
    svc = make_service(store, fixed_clock)
    await svc.refresh()
    assert svc.adherence_stats("m1") == (1, 2)
    with pytest.raises(MedicineNotFound):
        svc.adherence_stats("nope")


@pytest.mark.asyncio
async def test_superseded_fetch_is_discarded(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="stale")])
    release = asyncio.Event()
    original_list = store.list_medicines

    async def slow_list(user_id):
        result = await original_list(user_id)
        await release.wait()
        return result

    svc = make_service(store, fixed_clock)
    store.list_medicines = slow_list
    first = asyncio.create_task(svc.refresh())
    await asyncio.sleep(0)

    store.list_medicines = original_list
    store.docs = {"fresh": make_medicine(id="fresh")}
    await svc.refresh()

    release.set()
    await first
    assert [m.id for m in svc.medicines] == ["fresh"]


@pytest.mark.asyncio
async def test_fetch_failure_raises_store_error(make_store, fixed_clock):
    store = make_store()
    store.fail_list = ConnectionError("down")
    svc = make_service(store, fixed_clock)
    with pytest.raises(StoreError):
        await svc.refresh()


@pytest.mark.asyncio
async def test_both_writes_and_refetch_fail_rolls_back(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1")])
    svc = make_service(store, fixed_clock)
    await svc.refresh()
    store.fail_update = RuntimeError("offline")
    store.fail_replace = RuntimeError("offline")
    store.fail_list = ConnectionError("down")

    with pytest.raises(StoreError):
        await svc.mark_dose("m1", "08:00", True)

    assert store.call_kinds() == ["list", "update", "replace", "list"]
    assert svc.get("m1").taken_history == {}
    assert svc.get("m1").taken_status("08:00", fixed_clock.now()) is TakenStatus.UNRECORDED


@pytest.mark.asyncio
async def test_archive_survives_refresh_during_write(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1")])
    svc = make_service(store, fixed_clock)
    await svc.refresh()
    original_archive = store.archive

    async def archive_with_refresh(user_id, medicine_id):
        # a newer medicine shows up and a refresh lands before the write returns
        store.docs = {"new": make_medicine(id="new", name="Ibuprofen"), **store.docs}
        await svc.refresh()
        ok = await original_archive(user_id, medicine_id)
        store.fail_list = ConnectionError("down")
        return ok

    store.archive = archive_with_refresh
    await svc.archive("m1")

    assert svc.get("new").active is True
    assert svc.get("m1").active is False
    assert [m.id for m in svc.medicines] == ["new", "m1"]


@pytest.mark.asyncio
async def test_archive_of_medicine_removed_during_write(make_medicine, make_store, fixed_clock):
    store = make_store([make_medicine(id="m1"), make_medicine(id="m2")])
    svc = make_service(store, fixed_clock)
    await svc.refresh()

    async def archive_after_removal(user_id, medicine_id):
        store.docs = {"m2": store.docs["m2"]}
        await svc.refresh()
        store.fail_list = ConnectionError("down")
        return True

    store.archive = archive_after_removal
    await svc.archive("m1")

    assert [m.id for m in svc.medicines] == ["m2"]
    assert svc.get("m2").active is True
