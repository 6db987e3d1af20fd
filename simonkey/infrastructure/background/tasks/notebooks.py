# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notebook maintenance tasks."""

import logging
from typing import Any

import dramatiq

from simonkey.core.config import get_settings
from simonkey.domains.notebooks import FreezeService
from simonkey.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from simonkey.infrastructure.background.tasks.base import get_worker_store, run_async

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=0,
    time_limit=540000,  # 9 minutes
    priority=Priority.HIGH,
)
def process_scheduled_freeze_unfreeze() -> dict[str, Any]:
    """Apply due notebook freeze and unfreeze schedules.

    Runs on a short interval, so a failed sweep is not retried; the next
    run picks up whatever is still due.

    Returns:
        Notebooks frozen and unfrozen in this run.
    """

    async def _sweep() -> dict[str, Any]:
        store = await get_worker_store()
        result = await FreezeService(store, get_settings().freeze).process_scheduled()
        return result.to_dict()

    return run_async(_sweep())


def get_notebook_actors() -> list:
    """Get all notebook actors."""
    return [process_scheduled_freeze_unfreeze]
