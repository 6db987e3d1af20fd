# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Periodic enqueueing of the maintenance actors.

APScheduler fires inside the API process and only sends Dramatiq messages;
the sweeps themselves run in the workers. Jobs may be registered before or
after start(): the registry is the source of truth and is handed to
APScheduler whenever the scheduler is running.

Default jobs:
    - Freeze/unfreeze sweep every SCHEDULER_FREEZE_INTERVAL_MINUTES
    - All institution rankings every SCHEDULER_RANKINGS_INTERVAL_MINUTES
    - Full KPI recalculation daily at SCHEDULER_KPI_REFRESH_HOUR, in
      SCHEDULER_TIMEZONE

Example:
    from simonkey.infrastructure.background.scheduler import get_scheduler

    scheduler = get_scheduler()
    scheduler.every("Scheduled Freeze/Unfreeze", "process_scheduled_freeze_unfreeze", minutes=15)
    await scheduler.start()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from simonkey.core.config import SchedulerSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    """A Dramatiq actor enqueued on a trigger.

    Attributes:
        name: Unique job name, also used as the APScheduler job id.
        actor_name: Actor exported by the tasks package.
        trigger: APScheduler trigger deciding when a message is sent.
        args: Positional actor arguments.
        last_sent: When the last message was enqueued.
        sent_count: Messages enqueued so far.
        error_count: Ticks that failed to enqueue.
    """

    name: str
    actor_name: str
    trigger: BaseTrigger
    args: tuple = ()
    last_sent: datetime | None = None
    sent_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "actor": self.actor_name,
            "trigger": str(self.trigger),
            "last_sent": self.last_sent.isoformat() if self.last_sent else None,
            "sent_count": self.sent_count,
            "error_count": self.error_count,
        }


class JobScheduler:
    """Keeps the periodic job registry and drives APScheduler from it.

    Args:
        timezone_name: IANA timezone for cron triggers.
    """

    def __init__(self, timezone_name: str = "UTC") -> None:
        self._timezone = timezone_name
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, PeriodicJob] = {}

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def _get_actor(self, actor_name: str) -> Callable[..., Any] | None:
        from simonkey.infrastructure.background import tasks

        return getattr(tasks, actor_name, None)

    def every(self, name: str, actor_name: str, *, minutes: int, args: tuple = ()) -> PeriodicJob:
        """Register a job sent every ``minutes`` minutes."""
        return self._register(PeriodicJob(name, actor_name, IntervalTrigger(minutes=minutes), args))

    def cron(self, name: str, actor_name: str, expression: str, args: tuple = ()) -> PeriodicJob:
        """Register a job on a crontab expression (minute hour day month weekday).

        Raises:
            ValueError: If the expression is not a valid five-field crontab.
        """
        try:
            trigger = CronTrigger.from_crontab(expression, timezone=self._timezone)
        except ValueError as e:
            raise ValueError(f"Invalid cron expression: {expression}") from e
        return self._register(PeriodicJob(name, actor_name, trigger, args))

    def _register(self, job: PeriodicJob) -> PeriodicJob:
        if job.name in self._jobs:
            raise ValueError(f"Job already registered: {job.name}")
        self._jobs[job.name] = job
        if self._scheduler is not None:
            self._schedule(job)
        logger.info("Registered job %s -> %s (%s)", job.name, job.actor_name, job.trigger)
        return job

    def _schedule(self, job: PeriodicJob) -> None:
        self._scheduler.add_job(
            self._send,
            trigger=job.trigger,
            args=[job.name],
            id=job.name,
            name=job.name,
        )

    async def _send(self, name: str) -> None:
        job = self._jobs[name]
        try:
            actor = self._get_actor(job.actor_name)
            if actor is None:
                raise ValueError(f"Actor not found: {job.actor_name}")
            actor.send(*job.args)
        except Exception as e:
            # The job must keep firing on later ticks
            job.error_count += 1
            logger.error("Failed to enqueue %s: %s", job.name, e, exc_info=True)
            return

        job.last_sent = datetime.now(timezone.utc)
        job.sent_count += 1
        logger.debug("Enqueued %s", job.name)

    def jobs(self) -> list[PeriodicJob]:
        return list(self._jobs.values())

    async def start(self) -> None:
        """Start APScheduler with every registered job. A second call is a no-op."""
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        for job in self._jobs.values():
            self._schedule(job)
        self._scheduler.start()
        logger.info("Scheduler started with %d jobs (timezone: %s)", len(self._jobs), self._timezone)

    async def stop(self) -> None:
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    def status(self) -> dict[str, Any]:
        """Running flag and per-job counters, as reported by /health."""
        return {
            "running": self.is_running,
            "timezone": self._timezone,
            "jobs": [job.to_dict() for job in self._jobs.values()],
        }


def register_default_jobs(scheduler: JobScheduler, settings: SchedulerSettings) -> None:
    """Register the freeze sweep, rankings refresh and nightly KPI jobs."""
    scheduler.every(
        "Scheduled Freeze/Unfreeze",
        "process_scheduled_freeze_unfreeze",
        minutes=settings.freeze_interval_minutes,
    )
    scheduler.every(
        "Institution Rankings",
        "update_all_rankings",
        minutes=settings.rankings_interval_minutes,
    )
    scheduler.cron(
        "Nightly KPI Recalculation",
        "recalculate_all_kpis",
        f"0 {settings.kpi_refresh_hour} * * *",
    )


# Singleton instance
_scheduler: JobScheduler | None = None


def get_scheduler() -> JobScheduler:
    """Get the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler(get_settings().scheduler.timezone)
    return _scheduler


def scheduler_status() -> dict[str, Any]:
    """Status of the process scheduler, without creating one."""
    if _scheduler is None:
        return {"running": False, "jobs": []}
    return _scheduler.status()


async def start_scheduler() -> JobScheduler:
    """Register the default jobs and start the scheduler.

    Returns:
        Started scheduler instance.
    """
    scheduler = get_scheduler()
    if not scheduler.jobs():
        register_default_jobs(scheduler, get_settings().scheduler)
    await scheduler.start()
    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
