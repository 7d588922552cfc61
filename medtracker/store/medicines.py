# medtracker/store/medicines.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol

from sqlalchemy import and_, desc, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from medtracker.core.logging_utils import kv
from medtracker.core.medicine import (
    FIELD_ACTIVE,
    FIELD_CREATED_AT,
    FIELD_DURATION_DAYS,
    FIELD_NAME,
    FIELD_START_DATE,
    FIELD_TAKEN_HISTORY,
    FIELD_TIMES,
    FIELD_WITH_FOOD,
    Medicine,
    copy_history,
)
from medtracker.store.models import medicines, metadata

log = logging.getLogger("medtracker.store")

# document field -> column name
FIELD_COLUMNS: Dict[str, str] = {
    FIELD_NAME: "name",
    FIELD_TIMES: "times",
    FIELD_WITH_FOOD: "with_food",
    FIELD_DURATION_DAYS: "duration_days",
    FIELD_START_DATE: "start_date",
    FIELD_CREATED_AT: "created_at",
    FIELD_ACTIVE: "active",
    FIELD_TAKEN_HISTORY: "taken_history",
}


class MedicineStore(Protocol):
    """Persistence boundary for one user's medicine collection."""

    async def list_medicines(self, user_id: str) -> List[Medicine]: ...

    async def create_medicine(self, user_id: str, medicine: Medicine) -> str: ...

    async def update_field(
        self, user_id: str, medicine_id: str, field_name: str, value: Any
    ) -> bool: ...

    async def replace_document(
        self, user_id: str, medicine_id: str, medicine: Medicine
    ) -> bool: ...

    async def archive(self, user_id: str, medicine_id: str) -> bool: ...


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def column_value(field_name: str, value: Any) -> Any:
    if field_name in (FIELD_START_DATE, FIELD_CREATED_AT):
        return to_utc_naive(value)
    if field_name == FIELD_TIMES:
        return list(value)
    if field_name == FIELD_TAKEN_HISTORY:
        return copy_history(value)
    return value


def medicine_values(medicine: Medicine) -> Dict[str, Any]:
    """Column values for a medicine (without id/user_id)."""
    doc = medicine.to_document()
    return {FIELD_COLUMNS[f]: column_value(f, v) for f, v in doc.items()}


def row_to_medicine(row: Any) -> Medicine:
    m = row._mapping
    doc = {f: m[col] for f, col in FIELD_COLUMNS.items()}
    return Medicine.from_document(m["id"], doc)


class SqlMedicineStore:
    """
    MedicineStore on SQLAlchemy Core.
    Errors from the driver propagate; the service owns the fallback policy.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def list_medicines(self, user_id: str) -> List[Medicine]:
        stmt = (
            select(medicines)
            .where(medicines.c.user_id == user_id)
            .order_by(desc(medicines.c.created_at))
        )
        async with self._engine.begin() as conn:
            rows = (await conn.execute(stmt)).all()
        result = [row_to_medicine(r) for r in rows]
        log.debug("store.list " + kv(user_id=user_id, count=len(result)))
        return result

    async def create_medicine(self, user_id: str, medicine: Medicine) -> str:
        medicine_id = medicine.id or str(uuid.uuid4())
        stmt = insert(medicines).values(
            id=medicine_id, user_id=user_id, **medicine_values(medicine)
        )
        async with self._engine.begin() as conn:
            await conn.execute(stmt)
        log.debug("store.create " + kv(user_id=user_id, medicine_id=medicine_id))
        return medicine_id

    async def update_field(
        self, user_id: str, medicine_id: str, field_name: str, value: Any
    ) -> bool:
        column = FIELD_COLUMNS.get(field_name)
        if column is None:
            raise ValueError(f"unknown medicine field '{field_name}'")
        stmt = (
            update(medicines)
            .where(
                and_(medicines.c.id == medicine_id, medicines.c.user_id == user_id)
            )
            .values({column: column_value(field_name, value)})
        )
        async with self._engine.begin() as conn:
            res = await conn.execute(stmt)
            changed = res.rowcount > 0
        log.debug(
            "store.update "
            + kv(medicine_id=medicine_id, field=field_name, matched=changed)
        )
        return changed

    async def replace_document(
        self, user_id: str, medicine_id: str, medicine: Medicine
    ) -> bool:
        """Overwrite the whole record, recreating it when it is missing."""
        values = medicine_values(medicine)
        upd = (
            update(medicines)
            .where(
                and_(medicines.c.id == medicine_id, medicines.c.user_id == user_id)
            )
            .values(values)
        )
        async with self._engine.begin() as conn:
            res = await conn.execute(upd)
            if res.rowcount == 0:
                await conn.execute(
                    insert(medicines).values(id=medicine_id, user_id=user_id, **values)
                )
                log.info(
                    "store.replace.recreated "
                    + kv(user_id=user_id, medicine_id=medicine_id)
                )
        return True

    async def archive(self, user_id: str, medicine_id: str) -> bool:
        return await self.update_field(user_id, medicine_id, FIELD_ACTIVE, False)

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)


__all__ = ["MedicineStore", "SqlMedicineStore", "medicine_values", "row_to_medicine"]
