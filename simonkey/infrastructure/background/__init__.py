# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure.

Dramatiq actors run the KPI, ranking and freeze work off the request path,
and APScheduler enqueues the periodic jobs.

Quick Start:
    from simonkey.infrastructure.background import setup_dramatiq
    setup_dramatiq()

    from simonkey.infrastructure.background.tasks import update_user_kpis
    update_user_kpis.send("user-id")

Running Workers:
    dramatiq simonkey.infrastructure.background.tasks --processes 2 --threads 4

Scheduler:
    from simonkey.infrastructure.background import start_scheduler, stop_scheduler

    await start_scheduler()
    await stop_scheduler()
"""

from simonkey.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from simonkey.infrastructure.background.scheduler import (
    JobScheduler,
    PeriodicJob,
    get_scheduler,
    register_default_jobs,
    scheduler_status,
    start_scheduler,
    stop_scheduler,
)

# Task actors are imported lazily to avoid circular imports:
# from simonkey.infrastructure.background.tasks import update_user_kpis

__all__ = [
    # Broker
    "BrokerManager",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "setup_dramatiq",
    "shutdown_dramatiq",
    # Scheduler
    "JobScheduler",
    "PeriodicJob",
    "get_scheduler",
    "register_default_jobs",
    "scheduler_status",
    "start_scheduler",
    "stop_scheduler",
]
