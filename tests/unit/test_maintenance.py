# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the bulk KPI recalculation."""

from collections.abc import Callable
from datetime import datetime

import pytest

from simonkey.core.config import KpiSettings
from simonkey.domains.kpi import KpiService, kpi_path, recalculate_all_kpis, teacher_kpi_path
from simonkey.infrastructure.documents import MemoryDocumentStore


@pytest.fixture
def school(store: MemoryDocumentStore) -> MemoryDocumentStore:
    """Two school students, one free user and one teacher."""
    store.seed(
        {
            "users/s1": {"subscription": "school", "schoolRole": "student", "idEscuela": "i1"},
            "users/s2": {"subscription": "school", "schoolRole": "student", "idEscuela": "i1"},
            "users/free": {"subscription": "free"},
            "users/t1": {"subscription": "school", "schoolRole": "teacher", "idEscuela": "i1"},
        }
    )
    return store


class TestRecalculateAllKpis:
    """Tests for recalculate_all_kpis."""

    @pytest.mark.asyncio
    async def test_rebuilds_school_students_then_teachers(
        self,
        school: MemoryDocumentStore,
        kpi_settings: KpiSettings,
        clock: Callable[[], datetime],
    ) -> None:
        """Test every school student and teacher gets a dashboard."""
        result = await recalculate_all_kpis(school, kpi_settings, clock)

        assert result.students_processed == 2
        assert result.teachers_processed == 1
        assert result.errors == []
        assert (await school.get(kpi_path("s1"))).exists
        assert (await school.get(kpi_path("s2"))).exists
        assert not (await school.get(kpi_path("free"))).exists
        assert (await school.get(teacher_kpi_path("t1"))).exists

    @pytest.mark.asyncio
    async def test_failing_user_is_recorded_and_skipped(
        self,
        school: MemoryDocumentStore,
        kpi_settings: KpiSettings,
        clock: Callable[[], datetime],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test one failure does not stop the rest of the run."""
        original = KpiService.update_user_kpis

        async def flaky(self: KpiService, user_id: str):
            if user_id == "s1":
                raise RuntimeError("boom")
            return await original(self, user_id)

        monkeypatch.setattr(KpiService, "update_user_kpis", flaky)

        result = await recalculate_all_kpis(school, kpi_settings, clock)

        assert result.students_processed == 1
        assert result.teachers_processed == 1
        assert result.errors == ["student s1: boom"]
        assert result.to_dict() == {
            "processed": 2,
            "studentsProcessed": 1,
            "teachersProcessed": 1,
            "errors": ["student s1: boom"],
        }
