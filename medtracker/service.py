# medtracker/service.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from medtracker.core.logging_utils import kv
from medtracker.core.medicine import FIELD_TAKEN_HISTORY, Medicine
from medtracker.core.schedule import (
    AdherenceStats,
    DaySummary,
    DoseRow,
    ScheduleEntry,
    get_medicine_adherence_stats,
    get_medicines_by_time_slot,
    get_today_doses,
    get_today_schedule,
    next_dose,
    record_dose_action,
    summarize_today,
)
from medtracker.core.timeslots import Clock
from medtracker.core.validation import validate_new_medicine
from medtracker.store.medicines import MedicineStore


class MedicineNotFound(LookupError):
    pass


class StoreError(RuntimeError):
    pass


class MedicineService:
    """
    Owns the in-memory snapshot of one user's medicines and talks to the store.

    Views are computed from the snapshot with the pure functions in
    medtracker.core.schedule. Dose actions are applied to the snapshot first,
    then persisted; a failed write is reconciled by re-fetching.
    """

    def __init__(
        self,
        store: MedicineStore,
        user_id: str,
        clock: Clock,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.clock = clock
        self.log = logger or logging.getLogger("medtracker.service")
        self._medicines: Tuple[Medicine, ...] = ()
        self._generation = 0

    @property
    def medicines(self) -> Tuple[Medicine, ...]:
        return self._medicines

    # ---- fetch ------------------------------------------------------------------------
    async def refresh(self) -> Tuple[Medicine, ...]:
        """
        Re-fetch the collection. If another refresh starts while this one is in
        flight, this result is dropped and the newer one wins.
        """
        self._generation += 1
        generation = self._generation
        try:
            fetched = await self.store.list_medicines(self.user_id)
        except Exception as e:
            self.log.error("medicines.fetch.error " + kv(user_id=self.user_id, err=str(e)))
            raise StoreError(f"failed to fetch medicines: {e}") from e

        if generation != self._generation:
            self.log.debug(
                "medicines.fetch.superseded "
                + kv(generation=generation, latest=self._generation)
            )
            return self._medicines

        # Active medicines first, store order otherwise
        self._medicines = tuple(sorted(fetched, key=lambda m: not m.active))
        self.log.debug(
            "medicines.fetch.ok " + kv(user_id=self.user_id, count=len(fetched))
        )
        return self._medicines

    async def _refresh_quietly(self) -> bool:
        """Re-fetch; on failure (already logged) keep the local snapshot and return False."""
        try:
            await self.refresh()
        except StoreError:
            return False
        return True

    def _put_local(self, medicine: Medicine) -> None:
        """Swap the snapshot entry with the same id; no-op if it is gone."""
        self._medicines = tuple(
            medicine if m.id == medicine.id else m for m in self._medicines
        )

    # ---- mutations --------------------------------------------------------------------
    async def add_medicine(
        self,
        name: str,
        times: Sequence[str],
        *,
        with_food: bool = True,
        duration_days: int = 7,
    ) -> Medicine:
        validate_new_medicine(name, times, duration_days)
        now = self.clock.now()
        medicine = Medicine(
            id="",
            name=name.strip(),
            times=tuple(times),
            with_food=with_food,
            duration_days=duration_days,
            start_date=now,
            created_at=now,
            active=True,
            taken_history={},
        )
        try:
            medicine_id = await self.store.create_medicine(self.user_id, medicine)
        except Exception as e:
            self.log.error("medicine.add.error " + kv(name=name, err=str(e)))
            raise StoreError(f"failed to add medicine: {e}") from e

        self.log.info(
            "medicine.add " + kv(medicine_id=medicine_id, name=medicine.name, times=list(times))
        )
        await self._refresh_quietly()
        return replace(medicine, id=medicine_id)

    async def mark_dose(self, medicine_id: str, time_slot: str, taken: bool) -> Medicine:
        """
        Record today's take/skip for one slot.

        The snapshot is updated before the write. The write tries a single-field
        update, then a full document replace; if both fail the snapshot is
        re-fetched and StoreError is raised. If that re-fetch fails too, the
        local change is rolled back.
        """
        medicine = self.get(medicine_id)
        updated = record_dose_action(medicine, time_slot, taken, self.clock.now())

        self._put_local(updated)
        # a fetch started before this point would bring back the old history
        self._generation += 1

        action = "taken" if taken else "skipped"
        self.log.info(
            "dose.record " + kv(medicine_id=medicine_id, slot=time_slot, action=action)
        )

        if await self._persist_history(updated):
            await self._refresh_quietly()
            return updated

        if not await self._refresh_quietly():
            self._put_local(medicine)
            self.log.warning("dose.record.rollback " + kv(medicine_id=medicine_id, slot=time_slot))
        raise StoreError(f"failed to update medicine {medicine_id}")

    async def _persist_history(self, updated: Medicine) -> bool:
        try:
            if await self.store.update_field(
                self.user_id, updated.id, FIELD_TAKEN_HISTORY, updated.taken_history
            ):
                return True
            self.log.warning("dose.persist.update.miss " + kv(medicine_id=updated.id))
        except Exception as e:
            self.log.warning(
                "dose.persist.update.error " + kv(medicine_id=updated.id, err=str(e))
            )

        try:
            if await self.store.replace_document(self.user_id, updated.id, updated):
                self.log.info("dose.persist.replaced " + kv(medicine_id=updated.id))
                return True
            self.log.error("dose.persist.replace.miss " + kv(medicine_id=updated.id))
        except Exception as e:
            self.log.error(
                "dose.persist.replace.error " + kv(medicine_id=updated.id, err=str(e))
            )
        return False

    async def archive(self, medicine_id: str) -> None:
        self.get(medicine_id)  # raises MedicineNotFound before any write
        try:
            ok = await self.store.archive(self.user_id, medicine_id)
        except Exception as e:
            self.log.error("medicine.archive.error " + kv(medicine_id=medicine_id, err=str(e)))
            raise StoreError(f"failed to archive medicine {medicine_id}: {e}") from e
        if not ok:
            raise StoreError(f"failed to archive medicine {medicine_id}")

        # the snapshot may have been re-fetched while the write was in flight
        for m in self._medicines:
            if m.id == medicine_id:
                self._put_local(m.archived())
                break
        self.log.info("medicine.archive " + kv(medicine_id=medicine_id))
        await self._refresh_quietly()

    # ---- views ------------------------------------------------------------------------
    def get(self, medicine_id: str) -> Medicine:
        return self._medicines[self._index_of(medicine_id)]

    def today_schedule(self) -> List[ScheduleEntry]:
        return get_today_schedule(self._medicines, self.clock.now())

    def medicines_by_time_slot(self) -> Dict[str, List[Medicine]]:
        return get_medicines_by_time_slot(self._medicines)

    def today_doses(self) -> List[DoseRow]:
        return get_today_doses(self._medicines, self.clock.now())

    def next_dose(self) -> Optional[ScheduleEntry]:
        return next_dose(self._medicines, self.clock.now())

    def summary(self) -> DaySummary:
        return summarize_today(self._medicines, self.clock.now())

    def adherence_stats(self, medicine_id: str) -> AdherenceStats:
        return get_medicine_adherence_stats(self.get(medicine_id))

    # ---- misc -------------------------------------------------------------------------
    def _index_of(self, medicine_id: str) -> int:
        for i, m in enumerate(self._medicines):
            if m.id == medicine_id:
                return i
        self.log.error("medicine.lookup.miss " + kv(medicine_id=medicine_id))
        raise MedicineNotFound(medicine_id)


__all__ = ["MedicineService", "MedicineNotFound", "StoreError"]
