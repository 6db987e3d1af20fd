# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI domain for Simonkey.

This domain builds the learning dashboards:
- KpiService: per-user snapshot at users/{uid}/kpis/dashboard
- TeacherKpiService: per-teacher snapshot at teacherKpis/{teacherId}
- recalculate_all_kpis: students first, then teachers
"""

from simonkey.domains.kpi.aggregation import (
    NotebookAccumulator,
    RankPosition,
    WeeklyBuckets,
    percentile_for,
    rank_among,
    rank_descending,
    round_half_up,
)
from simonkey.domains.kpi.maintenance import RecalculationResult, recalculate_all_kpis
from simonkey.domains.kpi.schemas import (
    NotebookKpis,
    SubjectKpis,
    TeacherKpiSnapshot,
    UserKpiSnapshot,
)
from simonkey.domains.kpi.service import (
    KpiService,
    KpiServiceError,
    UserNotFoundError,
    kpi_path,
)
from simonkey.domains.kpi.teacher import (
    TeacherKpiService,
    TeacherNotFoundError,
    teacher_kpi_path,
)

__all__ = [
    # Services
    "KpiService",
    "TeacherKpiService",
    "recalculate_all_kpis",
    "RecalculationResult",
    # Errors
    "KpiServiceError",
    "UserNotFoundError",
    "TeacherNotFoundError",
    # Schemas
    "UserKpiSnapshot",
    "TeacherKpiSnapshot",
    "NotebookKpis",
    "SubjectKpis",
    # Aggregation helpers
    "NotebookAccumulator",
    "WeeklyBuckets",
    "RankPosition",
    "rank_among",
    "rank_descending",
    "percentile_for",
    "round_half_up",
    # Paths
    "kpi_path",
    "teacher_kpi_path",
]
