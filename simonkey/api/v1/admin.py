# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Admin maintenance endpoints.

These endpoints let operators trigger the periodic jobs by hand:
- POST /freeze-unfreeze - Run the notebook freeze/unfreeze sweep now
- POST /kpis/recalculate - Enqueue the bulk KPI recalculation
- POST /rankings/update - Rank every institution now

Every endpoint requires ``Authorization: Bearer <ADMIN_TOKEN>``.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from simonkey.api.dependencies import (
    get_app_settings,
    get_clock,
    get_store,
    require_admin_token,
)
from simonkey.core.config import Settings
from simonkey.domains.notebooks import FreezeService
from simonkey.domains.rankings import RankingService
from simonkey.infrastructure.documents import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_token)])


@router.post(
    "/freeze-unfreeze",
    summary="Run freeze/unfreeze sweep",
    description="Apply every due notebook freeze and unfreeze immediately.",
)
async def run_freeze_unfreeze(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> dict[str, Any]:
    """Run the freeze/unfreeze sweep.

    Returns:
        Notebooks frozen and unfrozen.

    Raises:
        HTTPException: If the sweep fails.
    """
    logger.info("Manual freeze/unfreeze sweep requested")
    try:
        result = await FreezeService(store, settings.freeze, clock).process_scheduled()
    except Exception as e:
        logger.error("Manual freeze/unfreeze sweep failed: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Freeze/unfreeze sweep failed: {e}",
        )
    return {"success": True, **result.to_dict()}


@router.post(
    "/kpis/recalculate",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Recalculate all KPIs",
    description="Enqueue a rebuild of every student and teacher dashboard.",
)
async def enqueue_kpi_recalculation() -> dict[str, Any]:
    """Enqueue the bulk KPI recalculation.

    Returns:
        The queued message id.
    """
    from simonkey.infrastructure.background.tasks import recalculate_all_kpis

    message = recalculate_all_kpis.send()
    logger.info("KPI recalculation enqueued: message_id=%s", message.message_id)
    return {"queued": True, "messageId": message.message_id}


@router.post(
    "/rankings/update",
    summary="Update all rankings",
    description="Rank the students of every institution immediately.",
)
async def run_rankings_update(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> dict[str, Any]:
    """Rank every institution.

    Returns:
        Success and error counts.
    """
    logger.info("Manual rankings update requested")
    service = RankingService(
        store,
        clock,
        batch_size=settings.freeze.batch_size,
        max_concurrent_reads=settings.kpi.max_concurrent_reads,
    )
    result = await service.update_all_rankings()
    return {"success": True, **result.to_dict()}
