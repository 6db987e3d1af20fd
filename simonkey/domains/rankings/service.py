# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Institution subject rankings.

Ranks the students of an institution per subject by the subject score in
their KPI dashboard (``materias[subjectId].scoreMateria``). Only students
with a positive score are ranked. Results are written twice:

- ``users/{studentId}/rankings/{subjectId}``: the student's own position
- ``institutionRankings/{institutionId}/subjects/{subjectId}``: the top list

Usage:
    from simonkey.domains.rankings import RankingService

    service = RankingService(store)
    result = await service.update_institution_rankings("inst-1")
    bulk = await service.update_all_rankings()
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from simonkey.domains.kpi.aggregation import rank_descending
from simonkey.domains.kpi.lookups import (
    bounded_gather,
    get_or_none,
    notebook_subject,
    query_or_empty,
    school_students,
    user_display_name,
)
from simonkey.domains.kpi.service import kpi_path
from simonkey.infrastructure.documents import (
    SERVER_TIMESTAMP,
    ChunkedBatchWriter,
    DocumentStore,
    FieldFilter,
)
from simonkey.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class RankingServiceError(Exception):
    """Base exception for ranking service errors."""

    pass


class InvalidInstitutionError(RankingServiceError):
    """Raised when no institution id is given."""

    pass


@dataclass
class RankingResult:
    """Outcome of ranking one institution."""

    institution_id: str
    subjects_processed: int = 0
    students_ranked: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": True,
            "institutionId": self.institution_id,
            "subjectsProcessed": self.subjects_processed,
            "studentsRanked": self.students_ranked,
        }


@dataclass
class BulkRankingResult:
    """Outcome of ranking every institution."""

    success_count: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "errors": list(self.errors),
        }


class RankingService:
    """Computes and stores institution subject rankings.

    Args:
        store: Document store.
        clock: Source of "now".
        batch_size: Writes per committed batch.
        top_size: Students kept in the institution top list.
        max_concurrent_reads: Bound on concurrent snapshot reads.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
        batch_size: int = 400,
        top_size: int = 100,
        max_concurrent_reads: int = 10,
    ) -> None:
        self._store = store
        self._clock = clock
        self._batch_size = batch_size
        self._top_size = top_size
        self._max_concurrent_reads = max_concurrent_reads

    async def update_institution_rankings(self, institution_id: str) -> RankingResult:
        """Rank an institution's students in every subject.

        Args:
            institution_id: Institution identifier.

        Returns:
            RankingResult with subjects and students processed.

        Raises:
            InvalidInstitutionError: If institution_id is empty.
        """
        if not institution_id:
            raise InvalidInstitutionError("institutionId is required")

        result = RankingResult(institution_id=institution_id)
        students = await school_students(self._store, institution_id)
        if not students:
            logger.info("Institution %s has no students to rank", institution_id)
            return result

        subject_ids = await self._institution_subjects(institution_id)
        snapshots = await bounded_gather(
            self._max_concurrent_reads,
            (get_or_none(self._store, kpi_path(s.id), what="student KPI snapshot") for s in students),
        )
        subject_scores = {
            student.id: ((snapshot.get("materias") if snapshot else None) or {})
            for student, snapshot in zip(students, snapshots)
        }
        names = {s.id: user_display_name(s.data, s.id) for s in students}

        writer = ChunkedBatchWriter(self._store, self._batch_size)
        for subject_id in sorted(subject_ids):
            scores: dict[str, float] = {}
            for student_id, subjects in subject_scores.items():
                score = (subjects.get(subject_id) or {}).get("scoreMateria", 0)
                if isinstance(score, (int, float)) and not isinstance(score, bool) and score > 0:
                    scores[student_id] = float(score)
            if not scores:
                continue

            ranks = rank_descending(scores)
            for student_id, rank in ranks.items():
                await writer.set(
                    f"users/{student_id}/rankings/{subject_id}",
                    {
                        "materiaId": subject_id,
                        "institucionId": institution_id,
                        "posicion": rank.position,
                        "totalAlumnos": rank.total,
                        "percentil": rank.percentile,
                        "score": scores[student_id],
                        "ultimaActualizacion": SERVER_TIMESTAMP,
                    },
                )

            top = sorted(ranks.items(), key=lambda item: (item[1].position, item[0]))
            await writer.set(
                f"institutionRankings/{institution_id}/subjects/{subject_id}",
                {
                    "materiaId": subject_id,
                    "institucionId": institution_id,
                    "totalAlumnos": len(ranks),
                    "estudiantes": [
                        {
                            "studentId": student_id,
                            "nombre": names[student_id],
                            "score": scores[student_id],
                            "posicion": rank.position,
                        }
                        for student_id, rank in top[: self._top_size]
                    ],
                    "ultimaActualizacion": SERVER_TIMESTAMP,
                },
            )
            result.subjects_processed += 1
            result.students_ranked += len(ranks)

        await writer.flush()
        logger.info(
            "Rankings updated for institution %s: subjects=%d, students=%d",
            institution_id,
            result.subjects_processed,
            result.students_ranked,
        )
        return result

    async def update_all_rankings(self) -> BulkRankingResult:
        """Rank every institution in schoolInstitutions.

        A failing institution is counted and skipped.
        """
        institutions = await self._store.query("schoolInstitutions")
        result = BulkRankingResult()
        for institution in institutions:
            try:
                await self.update_institution_rankings(institution.id)
                result.success_count += 1
            except Exception as e:
                logger.error(
                    "Failed to update rankings for institution %s: %s",
                    institution.id,
                    e,
                    exc_info=True,
                )
                result.error_count += 1
                result.errors.append(f"{institution.id}: {e}")

        logger.info(
            "Scheduled rankings update complete: success=%d, errors=%d",
            result.success_count,
            result.error_count,
        )
        return result

    async def _institution_subjects(self, institution_id: str) -> set[str]:
        """Subjects defined by the institution or referenced by its notebooks."""
        subjects = await query_or_empty(
            self._store,
            "schoolSubjects",
            [FieldFilter("idEscuela", "==", institution_id)],
            what="institution subjects",
        )
        notebooks = await query_or_empty(
            self._store,
            "schoolNotebooks",
            [FieldFilter("idEscuela", "==", institution_id)],
            what="institution notebooks",
        )
        subject_ids = {s.id for s in subjects}
        subject_ids.update(sid for nb in notebooks if (sid := notebook_subject(nb.data)))
        return subject_ids
