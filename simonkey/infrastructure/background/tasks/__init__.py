# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for the analytics engine.

Actors are organized by domain:
- KPIs: student and teacher dashboards, nightly bulk recalculation
- Notebooks: scheduled freeze/unfreeze sweep
- Rankings: per-institution subject rankings

Usage:
    from simonkey.infrastructure.background.tasks import update_user_kpis

    update_user_kpis.send("user-id")

Running Workers:
    dramatiq simonkey.infrastructure.background.tasks --processes 2 --threads 4
"""

from simonkey.core.config import get_settings
from simonkey.infrastructure.background.tasks.base import get_worker_store, run_async
from simonkey.infrastructure.background.tasks.kpis import (
    get_kpi_actors,
    recalculate_all_kpis,
    update_teacher_kpis,
    update_user_kpis,
)
from simonkey.infrastructure.background.tasks.notebooks import (
    get_notebook_actors,
    process_scheduled_freeze_unfreeze,
)
from simonkey.infrastructure.background.tasks.rankings import (
    get_ranking_actors,
    update_all_rankings,
    update_institution_rankings,
)
from simonkey.utils.logging import setup_logging

# The dramatiq CLI imports this package first in every worker process
setup_logging(get_settings())

__all__ = [
    # KPIs
    "update_user_kpis",
    "update_teacher_kpis",
    "recalculate_all_kpis",
    # Notebooks
    "process_scheduled_freeze_unfreeze",
    # Rankings
    "update_institution_rankings",
    "update_all_rankings",
    # Utilities
    "run_async",
    "get_worker_store",
    "get_all_actors",
]


def get_all_actors() -> list:
    """Get list of all defined actors."""
    actors = []
    actors.extend(get_kpi_actors())
    actors.extend(get_notebook_actors())
    actors.extend(get_ranking_actors())
    return actors
