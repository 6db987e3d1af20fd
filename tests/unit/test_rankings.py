# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for institution subject rankings."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

import pytest

from simonkey.domains.kpi import kpi_path
from simonkey.domains.rankings import InvalidInstitutionError, RankingService
from simonkey.infrastructure.documents import MemoryDocumentStore


def _student(institution: str, **extra: Any) -> dict[str, Any]:
    return {"subscription": "school", "schoolRole": "student", "idEscuela": institution, **extra}


def _subjects(**scores: float) -> dict[str, Any]:
    return {"materias": {subject: {"scoreMateria": score} for subject, score in scores.items()}}


@pytest.fixture
def institution(store: MemoryDocumentStore) -> MemoryDocumentStore:
    """An institution with four students, a defined subject and a notebook subject."""
    store.seed(
        {
            "schoolInstitutions/inst1": {"nombre": "Escuela Uno"},
            "schoolInstitutions/inst2": {"nombre": "Escuela Dos"},
            "schoolSubjects/mat1": {"idEscuela": "inst1", "nombre": "Matemáticas"},
            "schoolNotebooks/snb1": {"idEscuela": "inst1", "idMateria": "mat2"},
            "users/s1": _student("inst1", nombre="Ana"),
            "users/s2": _student("inst1", nombre="Beto"),
            "users/s3": _student("inst1", email="carla@example.com"),
            "users/s4": _student("inst1", nombre="Sin datos"),
            "users/s5": _student("inst2", nombre="Otra escuela"),
            kpi_path("s1"): _subjects(mat1=30, mat2=10),
            kpi_path("s2"): _subjects(mat1=50),
            kpi_path("s3"): _subjects(mat1=30, mat2=0),
            kpi_path("s5"): _subjects(mat1=99),
        }
    )
    return store


@pytest.fixture
def service(institution: MemoryDocumentStore, clock: Callable[[], datetime]) -> RankingService:
    """Create a ranking service over the seeded institution."""
    return RankingService(institution, clock)


class TestUpdateInstitutionRankings:
    """Tests for ranking one institution."""

    @pytest.mark.asyncio
    async def test_result_counts(self, service: RankingService) -> None:
        """Test subjects with positive scores are processed."""
        result = await service.update_institution_rankings("inst1")

        assert result.subjects_processed == 2
        assert result.students_ranked == 4
        assert result.to_dict() == {
            "success": True,
            "institutionId": "inst1",
            "subjectsProcessed": 2,
            "studentsRanked": 4,
        }

    @pytest.mark.asyncio
    async def test_student_ranking_documents(
        self,
        service: RankingService,
        institution: MemoryDocumentStore,
        fixed_now: datetime,
    ) -> None:
        """Test each ranked student gets their own position, ties shared."""
        await service.update_institution_rankings("inst1")
        documents = institution.dump()

        assert documents["users/s2/rankings/mat1"] == {
            "materiaId": "mat1",
            "institucionId": "inst1",
            "posicion": 1,
            "totalAlumnos": 3,
            "percentil": 100,
            "score": 50.0,
            "ultimaActualizacion": fixed_now,
        }
        assert documents["users/s1/rankings/mat1"]["posicion"] == 2
        assert documents["users/s3/rankings/mat1"]["posicion"] == 2
        assert documents["users/s3/rankings/mat1"]["percentil"] == 67
        assert documents["users/s1/rankings/mat2"]["totalAlumnos"] == 1

    @pytest.mark.asyncio
    async def test_unscored_students_are_not_ranked(
        self,
        service: RankingService,
        institution: MemoryDocumentStore,
    ) -> None:
        """Test zero scores, missing dashboards and other schools are skipped."""
        await service.update_institution_rankings("inst1")
        documents = institution.dump()

        assert "users/s3/rankings/mat2" not in documents
        assert not any(path.startswith("users/s4/rankings/") for path in documents)
        assert not any(path.startswith("users/s5/rankings/") for path in documents)

    @pytest.mark.asyncio
    async def test_institution_top_list(
        self,
        service: RankingService,
        institution: MemoryDocumentStore,
    ) -> None:
        """Test the top list is ordered by position, then student id."""
        await service.update_institution_rankings("inst1")

        top = institution.dump()["institutionRankings/inst1/subjects/mat1"]

        assert top["totalAlumnos"] == 3
        assert top["estudiantes"] == [
            {"studentId": "s2", "nombre": "Beto", "score": 50.0, "posicion": 1},
            {"studentId": "s1", "nombre": "Ana", "score": 30.0, "posicion": 2},
            {"studentId": "s3", "nombre": "carla@example.com", "score": 30.0, "posicion": 2},
        ]

    @pytest.mark.asyncio
    async def test_top_list_is_truncated(
        self,
        institution: MemoryDocumentStore,
        clock: Callable[[], datetime],
    ) -> None:
        """Test only top_size students are listed, while the total stays exact."""
        service = RankingService(institution, clock, top_size=2)

        await service.update_institution_rankings("inst1")

        top = institution.dump()["institutionRankings/inst1/subjects/mat1"]
        assert [s["studentId"] for s in top["estudiantes"]] == ["s2", "s1"]
        assert top["totalAlumnos"] == 3

    @pytest.mark.asyncio
    async def test_missing_institution_id(self, service: RankingService) -> None:
        """Test an empty institution id is rejected."""
        with pytest.raises(InvalidInstitutionError):
            await service.update_institution_rankings("")

    @pytest.mark.asyncio
    async def test_institution_without_students(
        self,
        service: RankingService,
        institution: MemoryDocumentStore,
    ) -> None:
        """Test an empty institution writes nothing."""
        before = institution.dump()

        result = await service.update_institution_rankings("empty")

        assert result.subjects_processed == 0
        assert institution.dump() == before


class TestUpdateAllRankings:
    """Tests for ranking every institution."""

    @pytest.mark.asyncio
    async def test_every_institution_is_ranked(
        self,
        service: RankingService,
        institution: MemoryDocumentStore,
    ) -> None:
        """Test all institutions in schoolInstitutions are processed."""
        result = await service.update_all_rankings()

        assert result.success_count == 2
        assert result.error_count == 0
        # inst2 has no subjects of its own, so s5 is not ranked
        assert "institutionRankings/inst1/subjects/mat1" in institution.dump()

    @pytest.mark.asyncio
    async def test_failures_are_counted(
        self,
        service: RankingService,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failing institution does not stop the others."""
        original = RankingService.update_institution_rankings

        async def flaky(self: RankingService, institution_id: str):
            if institution_id == "inst2":
                raise RuntimeError("broken")
            return await original(self, institution_id)

        monkeypatch.setattr(RankingService, "update_institution_rankings", flaky)

        result = await service.update_all_rankings()

        assert result.to_dict() == {
            "successCount": 1,
            "errorCount": 1,
            "errors": ["inst2: broken"],
        }
