# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-teacher KPI aggregation.

A teacher's dashboard averages the already computed dashboards of the
students taking the teacher's notebooks:

1. Resolve the teacher's institution (direct field or via the school admin)
2. Enumerate the teacher's subjects and each subject's notebooks
3. Match institution students to notebooks through idCuadernos, or through
   an active enrollment in the notebook's subject
4. Read each matching student's KPI snapshot and accumulate class averages
5. Bucket the matching students' study time for the current week

Student snapshots are only as fresh as their last aggregation. Pass
``refresh_students=True`` to recompute them first.

The snapshot is overwritten at ``teacherKpis/{teacherId}``.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from simonkey.core.config import KpiSettings, get_settings
from simonkey.domains.kpi.aggregation import WeeklyBuckets, percentage, round_half_up
from simonkey.domains.kpi.lookups import (
    ACTIVE_ENROLLMENT,
    bounded_gather,
    concept_count,
    get_or_none,
    query_or_empty,
    resolve_institution,
    school_students,
)
from simonkey.domains.kpi.schemas import (
    TeacherGlobalKpis,
    TeacherKpiSnapshot,
    TeacherNotebookKpis,
    TeacherSubjectKpis,
)
from simonkey.domains.kpi.service import KpiService, KpiServiceError, kpi_path
from simonkey.infrastructure.documents import DocumentSnapshot, DocumentStore, FieldFilter
from simonkey.utils.datetime import utc_now, week_bounds

logger = logging.getLogger(__name__)


def teacher_kpi_path(teacher_id: str) -> str:
    """Path of a teacher's KPI snapshot."""
    return f"teacherKpis/{teacher_id}"


class TeacherNotFoundError(KpiServiceError):
    """Raised when the teacher to aggregate does not exist."""

    def __init__(self, teacher_id: str) -> None:
        super().__init__(f"Teacher not found: {teacher_id}")
        self.teacher_id = teacher_id


@dataclass
class _ClassTotals:
    """Sums over the students of one notebook that have KPI data."""

    score: float = 0.0
    mastered: int = 0
    minutes: int = 0
    smart_studies: int = 0
    students_with_data: int = 0

    def add(self, entry: dict[str, Any]) -> None:
        self.students_with_data += 1
        self.score += _number(entry.get("scoreCuaderno"))
        self.mastered += int(_number(entry.get("conceptosDominados")))
        self.minutes += int(_number(entry.get("tiempoEstudioLocal")))
        self.smart_studies += int(_number(entry.get("estudiosInteligentesLocal")))


def _number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def _weighted(pairs: Iterable[tuple[float, int]]) -> float:
    """Mean of values weighted by student counts, 0 with no weight."""
    pairs = list(pairs)
    weight = sum(w for _, w in pairs)
    if weight <= 0:
        return 0.0
    return sum(v * w for v, w in pairs) / weight


class TeacherKpiService:
    """Service computing and storing per-teacher KPI snapshots.

    Args:
        store: Document store.
        settings: KPI settings. Defaults to the application settings.
        clock: Source of "now".
        user_kpis: Service used to refresh student snapshots on demand.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: KpiSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
        user_kpis: KpiService | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings().kpi
        self._clock = clock
        self._user_kpis = user_kpis or KpiService(store, self._settings, clock)

    async def update_teacher_kpis(
        self,
        teacher_id: str,
        refresh_students: bool = False,
    ) -> TeacherKpiSnapshot:
        """Recompute and overwrite the KPI snapshot of a teacher.

        Args:
            teacher_id: Teacher user identifier.
            refresh_students: Recompute matching student snapshots first.

        Returns:
            The stored snapshot.

        Raises:
            TeacherNotFoundError: If the teacher document does not exist.
        """
        now = self._clock()
        teacher = await self._store.get(f"users/{teacher_id}")
        if not teacher.exists:
            raise TeacherNotFoundError(teacher_id)

        institution_id = await resolve_institution(self._store, teacher.data)
        subjects = await query_or_empty(
            self._store,
            "schoolSubjects",
            [FieldFilter("idProfesor", "==", teacher_id)],
            what="teacher subjects",
        )
        if not subjects:
            logger.info("Teacher %s has no subjects", teacher_id)
            snapshot = TeacherKpiSnapshot(global_=TeacherGlobalKpis(updated_at=now))
            await self._store.set(teacher_kpi_path(teacher_id), snapshot.to_document())
            return snapshot

        subject_notebooks = await self._subject_notebooks(subjects)
        notebook_subject = {
            nb.id: subject.id for subject in subjects for nb in subject_notebooks[subject.id]
        }
        matches = await self._match_students(teacher_id, institution_id, subject_notebooks)

        student_ids = sorted({sid for ids in matches.values() for sid in ids})
        if refresh_students:
            await self._refresh_students(student_ids)

        concept_totals = dict(
            zip(
                notebook_subject,
                await bounded_gather(
                    self._settings.max_concurrent_reads,
                    (concept_count(self._store, "schoolConcepts", nb) for nb in notebook_subject),
                ),
            )
        )
        student_snapshots = await self._student_snapshots(student_ids)

        notebooks: dict[str, TeacherNotebookKpis] = {}
        for subject in subjects:
            for nb in subject_notebooks[subject.id]:
                totals = _ClassTotals()
                for sid in matches.get(nb.id, []):
                    entry = ((student_snapshots.get(sid) or {}).get("cuadernos") or {}).get(nb.id)
                    if entry:
                        totals.add(entry)
                notebooks[nb.id] = self._notebook_kpis(
                    nb,
                    subject.id,
                    totals,
                    total_students=len(matches.get(nb.id, [])),
                    total_concepts=concept_totals.get(nb.id, 0),
                )

        subject_kpis = {
            subject.id: self._subject_kpis(
                subject,
                {nb.id: notebooks[nb.id] for nb in subject_notebooks[subject.id]},
                matches,
            )
            for subject in sorted(subjects, key=lambda s: s.id)
        }

        snapshot = TeacherKpiSnapshot(
            global_=self._global_kpis(notebooks, subject_kpis, student_ids, now),
            subjects=subject_kpis,
            notebooks=dict(sorted(notebooks.items())),
            weekly_minutes=await self._weekly_minutes(student_ids, set(notebook_subject), now),
        )
        await self._store.set(teacher_kpi_path(teacher_id), snapshot.to_document())

        logger.info(
            "Updated teacher KPIs for %s: institution=%s, subjects=%d, notebooks=%d, students=%d",
            teacher_id,
            institution_id,
            len(subject_kpis),
            len(notebooks),
            len(student_ids),
        )
        return snapshot

    async def _subject_notebooks(
        self, subjects: list[DocumentSnapshot]
    ) -> dict[str, list[DocumentSnapshot]]:
        results = await bounded_gather(
            self._settings.max_concurrent_reads,
            (
                query_or_empty(
                    self._store,
                    "schoolNotebooks",
                    [FieldFilter("idMateria", "==", subject.id)],
                    what="subject notebooks",
                )
                for subject in subjects
            ),
        )
        return {subject.id: notebooks for subject, notebooks in zip(subjects, results)}

    async def _match_students(
        self,
        teacher_id: str,
        institution_id: str | None,
        subject_notebooks: dict[str, list[DocumentSnapshot]],
    ) -> dict[str, list[str]]:
        """Student ids taking each notebook.

        Students come from the teacher's institution, or every school student
        when the institution is unknown. Active enrollments in a subject
        also grant all of that subject's notebooks.
        """
        if institution_id is None:
            logger.warning(
                "Teacher %s has no resolvable institution, matching all school students",
                teacher_id,
            )
        students = await school_students(self._store, institution_id)
        enrollments = await query_or_empty(
            self._store,
            "enrollments",
            [
                FieldFilter("teacherId", "==", teacher_id),
                FieldFilter("status", "==", ACTIVE_ENROLLMENT),
            ],
            what="teacher enrollments",
        )
        enrolled: dict[str, set[str]] = {}
        for enrollment in enrollments:
            subject_id, student_id = enrollment.get("materiaId"), enrollment.get("studentId")
            if subject_id and student_id:
                enrolled.setdefault(str(subject_id), set()).add(str(student_id))

        matches: dict[str, list[str]] = {}
        for subject_id, notebooks in subject_notebooks.items():
            for nb in notebooks:
                ids = {s.id for s in students if nb.id in (s.get("idCuadernos") or [])}
                ids |= enrolled.get(subject_id, set())
                matches[nb.id] = sorted(ids)
        return matches

    async def _refresh_students(self, student_ids: list[str]) -> None:
        for sid in student_ids:
            try:
                await self._user_kpis.update_user_kpis(sid)
            except Exception:
                logger.warning("Failed to refresh KPIs of student %s", sid, exc_info=True)

    async def _student_snapshots(self, student_ids: list[str]) -> dict[str, dict[str, Any]]:
        snapshots = await bounded_gather(
            self._settings.max_concurrent_reads,
            (get_or_none(self._store, kpi_path(sid), what="student KPI snapshot") for sid in student_ids),
        )
        return {sid: s.data or {} for sid, s in zip(student_ids, snapshots) if s is not None}

    async def _weekly_minutes(
        self,
        student_ids: list[str],
        notebook_ids: set[str],
        now: datetime,
    ) -> dict[str, int]:
        start, end = week_bounds(now, self._settings.timezone)
        buckets = WeeklyBuckets(start, end, self._settings.timezone)
        sessions_per_student = await bounded_gather(
            self._settings.max_concurrent_reads,
            (
                query_or_empty(
                    self._store,
                    "studySessions",
                    [FieldFilter("userId", "==", sid), FieldFilter("startTime", ">=", start)],
                    what="student study sessions",
                )
                for sid in student_ids
            ),
        )
        for sessions in sessions_per_student:
            for session in sessions:
                if str(session.get("notebookId")) in notebook_ids:
                    buckets.add_session(session.data or {})
        return buckets.minutes()

    @staticmethod
    def _notebook_kpis(
        notebook: DocumentSnapshot,
        subject_id: str,
        totals: _ClassTotals,
        total_students: int,
        total_concepts: int,
    ) -> TeacherNotebookKpis:
        with_data = totals.students_with_data
        active = round_half_up(totals.minutes / with_data) if with_data else 0
        return TeacherNotebookKpis(
            title=notebook.get("title") or "",
            subject_id=subject_id,
            average_score=round_half_up(totals.score / with_data, 2) if with_data else 0,
            mastery_percentage=percentage(totals.mastered, total_concepts * with_data),
            effective_minutes=round_half_up(active / total_concepts, 2) if total_concepts else 0,
            active_minutes=active,
            average_smart_studies=(
                round_half_up(totals.smart_studies / with_data, 2) if with_data else 0
            ),
            total_students=total_students,
            students_with_data=with_data,
            mastered_concepts=totals.mastered,
            total_concepts=total_concepts,
        )

    @staticmethod
    def _subject_kpis(
        subject: DocumentSnapshot,
        notebooks: dict[str, TeacherNotebookKpis],
        matches: dict[str, list[str]],
    ) -> TeacherSubjectKpis:
        pairs = [(nb, nb.students_with_data) for nb in notebooks.values()]
        students = {sid for nb_id in notebooks for sid in matches.get(nb_id, [])}
        return TeacherSubjectKpis(
            name=subject.get("nombre") or "",
            average_score=round_half_up(_weighted((nb.average_score, w) for nb, w in pairs), 2),
            mastery_percentage=round_half_up(_weighted((nb.mastery_percentage, w) for nb, w in pairs)),
            effective_minutes=round_half_up(_weighted((nb.effective_minutes, w) for nb, w in pairs), 2),
            active_minutes=round_half_up(_weighted((nb.active_minutes, w) for nb, w in pairs)),
            average_smart_studies=round_half_up(
                _weighted((nb.average_smart_studies, w) for nb, w in pairs), 2
            ),
            total_students=len(students),
            total_notebooks=len(notebooks),
        )

    @staticmethod
    def _global_kpis(
        notebooks: dict[str, TeacherNotebookKpis],
        subjects: dict[str, TeacherSubjectKpis],
        student_ids: list[str],
        now: datetime,
    ) -> TeacherGlobalKpis:
        pairs = [(nb, nb.students_with_data) for nb in notebooks.values()]
        return TeacherGlobalKpis(
            average_score=round_half_up(_weighted((nb.average_score, w) for nb, w in pairs), 2),
            mastery_percentage=round_half_up(_weighted((nb.mastery_percentage, w) for nb, w in pairs)),
            effective_minutes=round_half_up(_weighted((nb.effective_minutes, w) for nb, w in pairs), 2),
            active_minutes=round_half_up(_weighted((nb.active_minutes, w) for nb, w in pairs)),
            average_smart_studies=round_half_up(
                _weighted((nb.average_smart_studies, w) for nb, w in pairs), 2
            ),
            total_students=len(student_ids),
            total_subjects=len(subjects),
            total_notebooks=len(notebooks),
            updated_at=now,
        )
