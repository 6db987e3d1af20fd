# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-user KPI aggregation.

This module rebuilds the dashboard snapshot of one user:
- Loads study sessions, quiz and mini-quiz results
- Loads the user's notebooks (school notebooks for school students,
  personal notebooks otherwise) and their concept counts
- Folds activity into per-notebook accumulators
- Ranks each notebook and subject against classmates
- Rolls figures up per subject and globally, buckets the current week,
  and appends the weekly position history

The snapshot is overwritten wholesale at ``users/{uid}/kpis/dashboard``.

Usage:
    from simonkey.domains.kpi import KpiService

    service = KpiService(store)
    snapshot = await service.update_user_kpis("user-123")
    print(snapshot.global_.score)
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from simonkey.core.config import KpiSettings, get_settings
from simonkey.domains.kpi.aggregation import (
    NotebookAccumulator,
    WeeklyBuckets,
    rank_among,
    round_half_up,
    session_start,
)
from simonkey.domains.kpi.lookups import (
    SCHOOL_SUBSCRIPTION,
    STUDENT_ROLE,
    active_enrollments,
    bounded_gather,
    concept_count,
    get_or_none,
    is_school_student,
    notebook_subject,
    query_or_empty,
)
from simonkey.domains.kpi.schemas import (
    GlobalKpis,
    NotebookKpis,
    PositionHistoryEntry,
    SubjectKpis,
    UserKpiSnapshot,
)
from simonkey.infrastructure.documents import DocumentSnapshot, DocumentStore, FieldFilter
from simonkey.utils.datetime import iso_week_label, utc_now, week_bounds

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def kpi_path(user_id: str) -> str:
    """Path of a user's KPI snapshot."""
    return f"users/{user_id}/kpis/dashboard"


class KpiServiceError(Exception):
    """Base exception for KPI service errors."""

    pass


class UserNotFoundError(KpiServiceError):
    """Raised when the user to aggregate does not exist."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


@dataclass(frozen=True)
class NotebookRef:
    """A notebook included in a user's dashboard."""

    id: str
    title: str
    subject_id: str | None


def _peer_value(snapshot: dict[str, Any] | None, section: str, key: str, field: str) -> float:
    entry = ((snapshot or {}).get(section) or {}).get(key) or {}
    value = entry.get(field, 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


class KpiService:
    """Service computing and storing per-user KPI snapshots.

    Args:
        store: Document store to read activity from and write snapshots to.
        settings: KPI settings. Defaults to the application settings.
        clock: Source of "now". Runs with the same clock over unchanged
            data produce identical snapshots.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: KpiSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings().kpi
        self._clock = clock

    async def get_user_kpis(self, user_id: str) -> dict[str, Any] | None:
        """Read the stored snapshot of a user.

        Returns:
            Snapshot data, or None if the user has no snapshot yet.
        """
        snapshot = await self._store.get(kpi_path(user_id))
        return snapshot.data

    async def update_user_kpis(self, user_id: str) -> UserKpiSnapshot:
        """Recompute and overwrite the KPI snapshot of a user.

        Args:
            user_id: User identifier.

        Returns:
            The stored snapshot.

        Raises:
            UserNotFoundError: If the user document does not exist.
        """
        now = self._clock()
        user = await self._store.get(f"users/{user_id}")
        if not user.exists:
            raise UserNotFoundError(user_id)

        school = is_school_student(user.data)

        sessions, quizzes, mini_quizzes, previous = await asyncio.gather(
            query_or_empty(
                self._store,
                "studySessions",
                [FieldFilter("userId", "==", user_id)],
                what="study sessions",
            ),
            query_or_empty(self._store, f"users/{user_id}/quizResults", what="quiz results"),
            query_or_empty(
                self._store, f"users/{user_id}/miniQuizResults", what="mini quiz results"
            ),
            get_or_none(self._store, kpi_path(user_id), what="previous KPI snapshot"),
        )

        if school:
            notebooks = await self._school_notebooks(user_id, user.data or {})
            concept_collection = "schoolConcepts"
        else:
            notebooks = await self._regular_notebooks(user_id)
            concept_collection = "conceptos"

        accumulators = await self._accumulate(
            notebooks, concept_collection, sessions, quizzes, mini_quizzes
        )
        notebook_kpis = {nb_id: acc.to_kpis() for nb_id, acc in sorted(accumulators.items())}

        classmates: dict[str, list[str]] = {}
        peer_snapshots: dict[str, dict[str, Any]] = {}
        if school and self._settings.peer_ranking_enabled and notebook_kpis:
            classmates = await self._classmates(user_id, list(notebook_kpis))
            peers = sorted({peer for ids in classmates.values() for peer in ids})
            peer_snapshots = await self._peer_snapshots(peers)

        self._rank_notebooks(notebook_kpis, classmates, peer_snapshots)
        subjects = self._rollup_subjects(notebook_kpis, classmates, peer_snapshots)
        global_kpis = self._global_kpis(notebook_kpis, subjects, now)

        week_start, week_end = week_bounds(now, self._settings.timezone)
        weekly = WeeklyBuckets(week_start, week_end, self._settings.timezone)
        for session in sessions:
            weekly.add_session(session.data or {})
        for result in [*quizzes, *mini_quizzes]:
            weekly.add_quiz(result.data or {})

        snapshot = UserKpiSnapshot(
            global_=global_kpis,
            notebooks=notebook_kpis,
            subjects=subjects,
            weekly_minutes=weekly.minutes(),
            weekly_histogram=weekly.histogram(),
            position_history=self._position_history(previous, global_kpis, now),
        )

        await self._store.set(kpi_path(user_id), snapshot.to_document())

        logger.info(
            "Updated KPIs for user %s: notebooks=%d, subjects=%d, score=%s",
            user_id,
            len(notebook_kpis),
            len(subjects),
            global_kpis.score,
        )
        return snapshot

    async def _regular_notebooks(self, user_id: str) -> list[NotebookRef]:
        snapshots = await query_or_empty(
            self._store,
            "notebooks",
            [FieldFilter("userId", "==", user_id)],
            what="notebooks",
        )
        return [
            NotebookRef(s.id, s.get("title") or "", notebook_subject(s.data)) for s in snapshots
        ]

    async def _school_notebooks(self, user_id: str, user: dict[str, Any]) -> list[NotebookRef]:
        """Notebooks assigned to a school student.

        idCuadernos is authoritative. Without it, the notebooks of every
        actively enrolled subject are used. A notebook missing its subject
        link is attributed to the student's only enrolled subject, if there
        is exactly one.
        """
        enrollments = await active_enrollments(self._store, user_id)
        enrolled_subjects = sorted({str(e["materiaId"]) for e in enrollments if e.get("materiaId")})

        notebook_ids = list(dict.fromkeys(str(i) for i in user.get("idCuadernos") or []))
        snapshots: list[DocumentSnapshot] = []
        if notebook_ids:
            found = await bounded_gather(
                self._settings.max_concurrent_reads,
                (
                    get_or_none(self._store, f"schoolNotebooks/{nb_id}", what="school notebook")
                    for nb_id in notebook_ids
                ),
            )
            snapshots = [s for s in found if s is not None]
        else:
            for subject_id in enrolled_subjects:
                snapshots.extend(
                    await query_or_empty(
                        self._store,
                        "schoolNotebooks",
                        [FieldFilter("idMateria", "==", subject_id)],
                        what="subject notebooks",
                    )
                )

        fallback_subject = enrolled_subjects[0] if len(enrolled_subjects) == 1 else None
        refs: dict[str, NotebookRef] = {}
        for s in snapshots:
            subject_id = notebook_subject(s.data) or fallback_subject
            if subject_id is None:
                logger.warning("School notebook %s has no subject link", s.id)
            refs.setdefault(s.id, NotebookRef(s.id, s.get("title") or "", subject_id))
        return list(refs.values())

    async def _accumulate(
        self,
        notebooks: list[NotebookRef],
        concept_collection: str,
        sessions: list[DocumentSnapshot],
        quizzes: list[DocumentSnapshot],
        mini_quizzes: list[DocumentSnapshot],
    ) -> dict[str, NotebookAccumulator]:
        counts = await bounded_gather(
            self._settings.max_concurrent_reads,
            (concept_count(self._store, concept_collection, nb.id) for nb in notebooks),
        )
        accumulators = {
            nb.id: NotebookAccumulator(
                notebook_id=nb.id,
                title=nb.title,
                subject_id=nb.subject_id,
                concept_count=count,
            )
            for nb, count in zip(notebooks, counts)
        }

        # Mastery keeps the latest review, so sessions are folded in start order
        ordered = sorted(sessions, key=lambda s: (session_start(s.data or {}) or _EPOCH, s.id))
        for session in ordered:
            accumulator = accumulators.get(str(session.get("notebookId")))
            if accumulator is not None:
                accumulator.add_session(session.data or {})

        for result in quizzes:
            accumulator = accumulators.get(str(result.get("notebookId")))
            if accumulator is not None:
                accumulator.add_quiz(result.data or {})
        for result in mini_quizzes:
            accumulator = accumulators.get(str(result.get("notebookId")))
            if accumulator is not None:
                accumulator.add_quiz(result.data or {}, counts_for_score=False)

        return accumulators

    async def _classmates(self, user_id: str, notebook_ids: list[str]) -> dict[str, list[str]]:
        """Other school students assigned to each notebook."""

        async def _load(notebook_id: str) -> list[str]:
            students = await query_or_empty(
                self._store,
                "users",
                [
                    FieldFilter("subscription", "==", SCHOOL_SUBSCRIPTION),
                    FieldFilter("schoolRole", "==", STUDENT_ROLE),
                    FieldFilter("idCuadernos", "array-contains", notebook_id),
                ],
                what="classmates",
            )
            return sorted(s.id for s in students if s.id != user_id)

        results = await bounded_gather(
            self._settings.max_concurrent_reads, (_load(nb_id) for nb_id in notebook_ids)
        )
        return dict(zip(notebook_ids, results))

    async def _peer_snapshots(self, peer_ids: list[str]) -> dict[str, dict[str, Any]]:
        """KPI snapshots of classmates, read once per peer."""
        snapshots = await bounded_gather(
            self._settings.max_concurrent_reads,
            (get_or_none(self._store, kpi_path(pid), what="peer KPI snapshot") for pid in peer_ids),
        )
        return {pid: (s.data or {}) if s is not None else {} for pid, s in zip(peer_ids, snapshots)}

    @staticmethod
    def _rank_notebooks(
        notebook_kpis: dict[str, NotebookKpis],
        classmates: dict[str, list[str]],
        peer_snapshots: dict[str, dict[str, Any]],
    ) -> None:
        for nb_id, kpis in notebook_kpis.items():
            peer_scores = [
                _peer_value(peer_snapshots.get(peer), "cuadernos", nb_id, "scoreCuaderno")
                for peer in classmates.get(nb_id, [])
            ]
            rank = rank_among(kpis.score, peer_scores)
            kpis.ranking_position = rank.position
            kpis.total_students = rank.total
            kpis.percentile = rank.percentile

    @staticmethod
    def _rollup_subjects(
        notebook_kpis: dict[str, NotebookKpis],
        classmates: dict[str, list[str]],
        peer_snapshots: dict[str, dict[str, Any]],
    ) -> dict[str, SubjectKpis]:
        grouped: dict[str, list[NotebookKpis]] = {}
        for kpis in notebook_kpis.values():
            if kpis.subject_id:
                grouped.setdefault(kpis.subject_id, []).append(kpis)

        subjects: dict[str, SubjectKpis] = {}
        for subject_id in sorted(grouped):
            members = grouped[subject_id]
            score = round_half_up(sum(m.score for m in members), 2)
            peers = sorted({p for m in members for p in classmates.get(m.notebook_id, [])})
            rank = rank_among(
                score,
                [
                    _peer_value(peer_snapshots.get(p), "materias", subject_id, "scoreMateria")
                    for p in peers
                ],
            )
            subjects[subject_id] = SubjectKpis(
                subject_id=subject_id,
                score=score,
                percentile=rank.percentile,
                ranking_position=rank.position,
                total_students=rank.total,
                study_minutes=sum(m.study_minutes for m in members),
                smart_studies=sum(m.smart_studies for m in members),
                notebook_ids=sorted(m.notebook_id for m in members),
            )
        return subjects

    @staticmethod
    def _global_kpis(
        notebook_kpis: dict[str, NotebookKpis],
        subjects: dict[str, SubjectKpis],
        now: datetime,
    ) -> GlobalKpis:
        percentiles = [k.percentile for k in notebook_kpis.values()]
        return GlobalKpis(
            score=round_half_up(sum(k.score for k in notebook_kpis.values()), 2),
            average_percentile=(
                round_half_up(sum(percentiles) / len(percentiles)) if percentiles else 0
            ),
            study_minutes=sum(k.study_minutes for k in notebook_kpis.values()),
            smart_studies=sum(k.smart_studies for k in notebook_kpis.values()),
            total_notebooks=len(notebook_kpis),
            total_subjects=len(subjects),
            updated_at=now,
        )

    def _position_history(
        self,
        previous: DocumentSnapshot | None,
        global_kpis: GlobalKpis,
        now: datetime,
    ) -> list[PositionHistoryEntry]:
        """Previous weekly entries plus this week's, newest last."""
        week = iso_week_label(now, self._settings.timezone)
        entries: list[PositionHistoryEntry] = []
        for raw in (previous.get("historicosPosiciones") if previous else None) or []:
            try:
                entry = PositionHistoryEntry.model_validate(raw)
            except ValueError:
                logger.debug("Skipping malformed position history entry: %r", raw)
                continue
            if entry.week != week:
                entries.append(entry)

        entries.append(
            PositionHistoryEntry(
                week=week,
                score=global_kpis.score,
                average_percentile=global_kpis.average_percentile,
                recorded_at=now,
            )
        )
        entries.sort(key=lambda e: e.week)
        return entries[-self._settings.history_weeks :]
