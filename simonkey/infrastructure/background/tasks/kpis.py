# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI background tasks.

Actors that rebuild student and teacher dashboards. Failures are logged and
re-raised so Dramatiq's retry middleware can redeliver the message.
"""

import logging
from typing import Any

import dramatiq

from simonkey.core.config import get_settings
from simonkey.domains.kpi import KpiService, TeacherKpiService
from simonkey.domains.kpi.maintenance import recalculate_all_kpis as recalculate_all
from simonkey.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from simonkey.infrastructure.background.tasks.base import get_worker_store, run_async

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.KPIS,
    max_retries=2,
    time_limit=120000,  # 2 minutes
    priority=Priority.NORMAL,
)
def update_user_kpis(user_id: str) -> dict[str, Any]:
    """Rebuild one user's KPI dashboard.

    Args:
        user_id: User identifier.

    Returns:
        Summary with the user's global score.
    """

    async def _update() -> dict[str, Any]:
        store = await get_worker_store()
        snapshot = await KpiService(store, get_settings().kpi).update_user_kpis(user_id)
        return {
            "user_id": user_id,
            "score_global": snapshot.global_.score,
            "notebooks": len(snapshot.notebooks),
        }

    try:
        return run_async(_update())
    except Exception as e:
        logger.error("Failed to update KPIs for user %s: %s", user_id, e, exc_info=True)
        raise


@dramatiq.actor(
    queue_name=Queues.KPIS,
    max_retries=2,
    time_limit=300000,  # 5 minutes
    priority=Priority.NORMAL,
)
def update_teacher_kpis(teacher_id: str, refresh_students: bool = False) -> dict[str, Any]:
    """Rebuild one teacher's KPI dashboard.

    Args:
        teacher_id: Teacher identifier.
        refresh_students: Rebuild the students' dashboards first.

    Returns:
        Summary with the number of subjects covered.
    """

    async def _update() -> dict[str, Any]:
        store = await get_worker_store()
        snapshot = await TeacherKpiService(store, get_settings().kpi).update_teacher_kpis(
            teacher_id, refresh_students=refresh_students
        )
        return {"teacher_id": teacher_id, "subjects": len(snapshot.subjects)}

    try:
        return run_async(_update())
    except Exception as e:
        logger.error("Failed to update KPIs for teacher %s: %s", teacher_id, e, exc_info=True)
        raise


@dramatiq.actor(
    queue_name=Queues.MAINTENANCE,
    max_retries=1,
    time_limit=3600000,  # 1 hour
    priority=Priority.LOW,
)
def recalculate_all_kpis() -> dict[str, Any]:
    """Rebuild every school student's and teacher's dashboard.

    Returns:
        Processed count and per-user errors.
    """

    async def _recalculate() -> dict[str, Any]:
        store = await get_worker_store()
        result = await recalculate_all(store, get_settings().kpi)
        return result.to_dict()

    return run_async(_recalculate())


def get_kpi_actors() -> list:
    """Get all KPI actors."""
    return [
        update_user_kpis,
        update_teacher_kpis,
        recalculate_all_kpis,
    ]
