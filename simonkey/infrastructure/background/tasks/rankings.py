# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Institution ranking tasks."""

import logging
from typing import Any

import dramatiq

from simonkey.core.config import get_settings
from simonkey.domains.rankings import RankingService
from simonkey.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from simonkey.infrastructure.background.tasks.base import get_worker_store, run_async

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


def _service(store) -> RankingService:
    settings = get_settings()
    return RankingService(
        store,
        batch_size=settings.freeze.batch_size,
        max_concurrent_reads=settings.kpi.max_concurrent_reads,
    )


@dramatiq.actor(
    queue_name=Queues.RANKINGS,
    max_retries=2,
    time_limit=300000,  # 5 minutes
    priority=Priority.NORMAL,
)
def update_institution_rankings(institution_id: str) -> dict[str, Any]:
    """Rank one institution's students in every subject.

    Args:
        institution_id: Institution identifier.

    Returns:
        Subjects and students processed.
    """

    async def _update() -> dict[str, Any]:
        store = await get_worker_store()
        result = await _service(store).update_institution_rankings(institution_id)
        return result.to_dict()

    try:
        return run_async(_update())
    except Exception as e:
        logger.error("Failed to update rankings for %s: %s", institution_id, e, exc_info=True)
        raise


@dramatiq.actor(
    queue_name=Queues.RANKINGS,
    max_retries=1,
    time_limit=1800000,  # 30 minutes
    priority=Priority.LOW,
)
def update_all_rankings() -> dict[str, Any]:
    """Rank every institution.

    Returns:
        Success and error counts.
    """

    async def _update() -> dict[str, Any]:
        store = await get_worker_store()
        result = await _service(store).update_all_rankings()
        return result.to_dict()

    return run_async(_update())


def get_ranking_actors() -> list:
    """Get all ranking actors."""
    return [
        update_institution_rankings,
        update_all_rankings,
    ]
