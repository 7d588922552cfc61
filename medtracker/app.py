# medtracker/app.py
from __future__ import annotations

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from medtracker import config as cfg
from medtracker.core.logging_utils import kv, setup_logging
from medtracker.core.timeslots import Clock
from medtracker.core.validation import validate_config
from medtracker.service import MedicineService, StoreError
from medtracker.store.medicines import SqlMedicineStore
from medtracker.store.session import dispose_engine, engine

log = logging.getLogger("medtracker.app")


async def refresh_job(service: MedicineService) -> None:
    """Periodic re-fetch; a failed fetch keeps the previous snapshot."""
    try:
        await service.refresh()
    except StoreError as e:
        log.error("job.refresh.failed " + kv(err=str(e)))


def log_summary(service: MedicineService) -> None:
    s = service.summary()
    # Console-friendly one-liner for monitoring
    log.info(
        f"[SCHEDULE] {s.day}: active={s.active_medicines} slots={s.slots} "
        f"past={s.past_slots} upcoming={s.upcoming_slots} "
        f"taken={s.taken} skipped={s.skipped} needs_action={s.needs_action} "
        f"next={s.next_slot or '—'}"
    )


def schedule_jobs(service: MedicineService, timezone) -> AsyncIOScheduler:
    """
    Register the refresh and daily summary jobs.
    The scheduler is created and configured here, but NOT started.
    """
    sched = AsyncIOScheduler(timezone=timezone)
    sched.add_job(
        refresh_job,
        trigger="interval",
        seconds=cfg.REFRESH_SECONDS,
        kwargs={"service": service},
        id="medicines:refresh",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    sched.add_job(
        log_summary,
        trigger="cron",
        hour=cfg.SUMMARY_CRON_HOUR,
        minute=cfg.SUMMARY_CRON_MINUTE,
        kwargs={"service": service},
        id="medicines:summary",
        replace_existing=True,
        coalesce=True,
        misfire_grace_time=300,
        max_instances=1,
    )
    return sched


async def main() -> None:
    setup_logging(cfg)
    validate_config(cfg)

    store = SqlMedicineStore(engine())
    await store.create_schema()

    service = MedicineService(store, cfg.get_user_id(), Clock(cfg.TZ))
    await service.refresh()
    log_summary(service)

    sched = schedule_jobs(service, timezone=cfg.TZ)
    sched.start()
    log.info("startup.ready " + kv(user_id=service.user_id, medicines=len(service.medicines)))

    try:
        await asyncio.Event().wait()
    finally:
        sched.shutdown(wait=False)
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
