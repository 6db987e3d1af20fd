# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the periodic job scheduler."""

from unittest.mock import MagicMock

import pytest

from simonkey.core.config import SchedulerSettings
from simonkey.infrastructure.background import scheduler as scheduler_module
from simonkey.infrastructure.background.scheduler import (
    JobScheduler,
    register_default_jobs,
    scheduler_status,
)


@pytest.fixture
def scheduler() -> JobScheduler:
    """Create a scheduler that has not been started."""
    return JobScheduler("America/Mexico_City")


class TestJobRegistration:
    """Tests for registering jobs."""

    def test_default_jobs(self, scheduler: JobScheduler) -> None:
        """Test the freeze, rankings and nightly KPI jobs are registered."""
        register_default_jobs(scheduler, SchedulerSettings(kpi_refresh_hour=3))

        assert [job.actor_name for job in scheduler.jobs()] == [
            "process_scheduled_freeze_unfreeze",
            "update_all_rankings",
            "recalculate_all_kpis",
        ]
        nightly = scheduler.jobs()[2]
        assert "hour='3'" in str(nightly.trigger)

    def test_invalid_cron_expression(self, scheduler: JobScheduler) -> None:
        """Test cron expressions need five fields."""
        with pytest.raises(ValueError, match="Invalid cron expression"):
            scheduler.cron("Bad", "recalculate_all_kpis", "0 2 * *")

        assert scheduler.jobs() == []

    def test_duplicate_name_rejected(self, scheduler: JobScheduler) -> None:
        """Test job names are unique."""
        scheduler.every("Sweep", "process_scheduled_freeze_unfreeze", minutes=15)

        with pytest.raises(ValueError, match="already registered"):
            scheduler.every("Sweep", "update_all_rankings", minutes=30)

        assert len(scheduler.jobs()) == 1


class TestSending:
    """Tests for enqueueing scheduled messages."""

    @pytest.mark.asyncio
    async def test_tick_sends_message(
        self,
        scheduler: JobScheduler,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a tick sends the actor message with the job arguments."""
        actor = MagicMock()
        monkeypatch.setattr(scheduler, "_get_actor", lambda name: actor)
        job = scheduler.every(
            "One institution",
            "update_institution_rankings",
            minutes=30,
            args=("inst1",),
        )

        await scheduler._send(job.name)

        actor.send.assert_called_once_with("inst1")
        assert job.sent_count == 1
        assert job.last_sent is not None

    @pytest.mark.asyncio
    async def test_missing_actor_counts_error(
        self,
        scheduler: JobScheduler,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test an unknown actor is recorded as an error, not raised."""
        monkeypatch.setattr(scheduler, "_get_actor", lambda name: None)
        job = scheduler.every("Ghost", "no_such_actor", minutes=5)

        await scheduler._send(job.name)

        assert job.error_count == 1
        assert job.sent_count == 0
        assert job.last_sent is None


class TestLifecycle:
    """Tests for starting, stopping and status."""

    @pytest.mark.asyncio
    async def test_jobs_registered_before_start_are_scheduled(self, scheduler: JobScheduler) -> None:
        """Test start hands every registered job to APScheduler."""
        sweep = scheduler.every("Sweep", "process_scheduled_freeze_unfreeze", minutes=15)

        await scheduler.start()
        try:
            nightly = scheduler.cron("Nightly", "recalculate_all_kpis", "0 2 * * *")

            assert scheduler.is_running is True
            assert scheduler._scheduler.get_job(sweep.name).next_run_time is not None
            assert scheduler._scheduler.get_job(nightly.name).next_run_time is not None
        finally:
            await scheduler.stop()

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, scheduler: JobScheduler) -> None:
        """Test a second start keeps the same APScheduler instance."""
        await scheduler.start()
        inner = scheduler._scheduler

        await scheduler.start()

        assert scheduler._scheduler is inner
        await scheduler.stop()

    def test_status(self, scheduler: JobScheduler) -> None:
        """Test the status lists every job with its counters."""
        scheduler.every("Sweep", "process_scheduled_freeze_unfreeze", minutes=15)

        status = scheduler.status()

        assert status["running"] is False
        assert status["timezone"] == "America/Mexico_City"
        assert status["jobs"] == [
            {
                "name": "Sweep",
                "actor": "process_scheduled_freeze_unfreeze",
                "trigger": "interval[0:15:00]",
                "last_sent": None,
                "sent_count": 0,
                "error_count": 0,
            }
        ]

    def test_status_without_scheduler(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the module status does not create a scheduler."""
        monkeypatch.setattr(scheduler_module, "_scheduler", None)

        assert scheduler_status() == {"running": False, "jobs": []}
        assert scheduler_module._scheduler is None
