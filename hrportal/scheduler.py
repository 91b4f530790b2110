from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from hrportal.audit import audit_system_action
from hrportal.db import SessionLocal
from hrportal.services.attendance import auto_checkout_stale_records
from hrportal.services.housekeeping import run_cleanup
from hrportal.services.sessions import cleanup_expired_sessions
from hrportal.settings import get_settings

logger = logging.getLogger("hrportal.scheduler")

MIN_INTERVAL_SECONDS = 15


def run_auto_checkout_job(now_utc: datetime | None = None) -> dict[str, Any]:
    with SessionLocal() as db:
        closed_ids = auto_checkout_stale_records(db, now=now_utc)
        if closed_ids:
            audit_system_action(
                db,
                action="ATTENDANCE_AUTO_CHECKOUT",
                details={"attendance_ids": closed_ids},
            )
    return {"closed": len(closed_ids)}


def run_cleanup_job(now_utc: datetime | None = None) -> dict[str, Any]:
    with SessionLocal() as db:
        result = run_cleanup(db, now=now_utc)
        if any(result.values()):
            audit_system_action(db, action="HOUSEKEEPING_CLEANUP", details=result)
    return result


def run_session_cleanup_job(now_utc: datetime | None = None) -> dict[str, Any]:
    with SessionLocal() as db:
        deleted = cleanup_expired_sessions(db, now=now_utc)
    return {"deleted_sessions": deleted}


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    interval_seconds: int
    func: Callable[[datetime], dict[str, Any]]


def default_jobs() -> list[ScheduledJob]:
    settings = get_settings()
    return [
        ScheduledJob("auto_checkout", settings.attendance_scheduler_interval_seconds, run_auto_checkout_job),
        ScheduledJob("cleanup", settings.cleanup_interval_seconds, run_cleanup_job),
        ScheduledJob("session_cleanup", settings.session_cleanup_interval_seconds, run_session_cleanup_job),
    ]


async def _job_loop(job: ScheduledJob, stop_event: asyncio.Event) -> None:
    interval_seconds = max(MIN_INTERVAL_SECONDS, int(job.interval_seconds))
    while not stop_event.is_set():
        try:
            result = await asyncio.to_thread(job.func, datetime.now(timezone.utc))
        except Exception:
            logger.exception("scheduler_tick_failed", extra={"job": job.name})
        else:
            if any(result.values()):
                logger.info("scheduler_tick", extra={"job": job.name, "result": result})

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue


class HousekeepingScheduler:
    def __init__(self, jobs: list[ScheduledJob] | None = None) -> None:
        self._jobs = jobs if jobs is not None else default_jobs()
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(_job_loop(job, self._stop_event), name=f"scheduler:{job.name}")
            for job in self._jobs
        ]
        logger.info(
            "scheduler_started",
            extra={"jobs": {job.name: max(MIN_INTERVAL_SECONDS, job.interval_seconds) for job in self._jobs}},
        )

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        self._stop_event = None
        logger.info("scheduler_stopped")
