# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk KPI recalculation.

Recomputes every school student's dashboard, then every school teacher's.
Teacher dashboards average student dashboards, so students always go first.
A failing user is recorded and skipped.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from simonkey.core.config import KpiSettings, get_settings
from simonkey.domains.kpi.lookups import school_students, school_teachers
from simonkey.domains.kpi.service import KpiService
from simonkey.domains.kpi.teacher import TeacherKpiService
from simonkey.infrastructure.documents import DocumentStore
from simonkey.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@dataclass
class RecalculationResult:
    """Outcome of a bulk recalculation.

    Attributes:
        students_processed: Student dashboards rebuilt.
        teachers_processed: Teacher dashboards rebuilt.
        errors: One message per user that failed.
    """

    students_processed: int = 0
    teachers_processed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.students_processed + self.teachers_processed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "processed": self.processed,
            "studentsProcessed": self.students_processed,
            "teachersProcessed": self.teachers_processed,
            "errors": list(self.errors),
        }


async def recalculate_all_kpis(
    store: DocumentStore,
    settings: KpiSettings | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> RecalculationResult:
    """Rebuild the dashboards of every school student, then every teacher.

    Args:
        store: Document store.
        settings: KPI settings. Defaults to the application settings.
        clock: Source of "now".

    Returns:
        RecalculationResult with counts and per-user errors.
    """
    settings = settings or get_settings().kpi
    user_kpis = KpiService(store, settings, clock)
    teacher_kpis = TeacherKpiService(store, settings, clock, user_kpis=user_kpis)
    result = RecalculationResult()

    students = await school_students(store)
    logger.info("Recalculating KPIs for %d school students", len(students))
    for student in students:
        try:
            await user_kpis.update_user_kpis(student.id)
            result.students_processed += 1
        except Exception as e:
            logger.error("Failed to recalculate KPIs for student %s: %s", student.id, e, exc_info=True)
            result.errors.append(f"student {student.id}: {e}")

    teachers = await school_teachers(store)
    logger.info("Recalculating KPIs for %d teachers", len(teachers))
    for teacher in teachers:
        try:
            await teacher_kpis.update_teacher_kpis(teacher.id)
            result.teachers_processed += 1
        except Exception as e:
            logger.error("Failed to recalculate KPIs for teacher %s: %s", teacher.id, e, exc_info=True)
            result.errors.append(f"teacher {teacher.id}: {e}")

    logger.info(
        "KPI recalculation complete: processed=%d, errors=%d",
        result.processed,
        len(result.errors),
    )
    return result
