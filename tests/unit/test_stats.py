# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for user study statistics."""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

import pytest

from simonkey.core.config import KpiSettings
from simonkey.domains.stats import UserStatsService, mastered_in, stats_path, streak_length

TODAY = date(2025, 3, 12)


def _activity(user_id: str, when: datetime, kind: str = "study_session_completed") -> dict:
    return {"userId": user_id, "type": kind, "timestamp": when}


class TestStreakLength:
    """Tests for the consecutive-day streak."""

    def test_streak_ending_today(self) -> None:
        """Test consecutive days through today."""
        days = {TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=2)}

        assert streak_length(days, TODAY) == 3

    def test_idle_today_keeps_yesterdays_streak(self) -> None:
        """Test a streak is still alive until the day is over."""
        days = {TODAY - timedelta(days=1), TODAY - timedelta(days=2)}

        assert streak_length(days, TODAY) == 2

    def test_gap_breaks_the_streak(self) -> None:
        """Test a missed day ends the streak."""
        days = {TODAY, TODAY - timedelta(days=2), TODAY - timedelta(days=3)}

        assert streak_length(days, TODAY) == 1

    def test_no_activity(self) -> None:
        """Test an empty history has no streak."""
        assert streak_length(set(), TODAY) == 0
        assert streak_length({TODAY - timedelta(days=5)}, TODAY) == 0

    def test_streak_is_capped(self) -> None:
        """Test the streak never exceeds the 30-day window."""
        days = {TODAY - timedelta(days=i) for i in range(45)}

        assert streak_length(days, TODAY) == 30


class TestMasteredIn:
    """Tests for mastered concept counting."""

    def test_counts_dominado_flags(self) -> None:
        """Test only truthy dominado flags count."""
        documents = [
            {"conceptos": [{"dominado": True}, {"dominado": False}, {}]},
            {"conceptos": [{"dominado": True}, "bad"]},
            {"conceptos": None},
        ]

        assert mastered_in(documents) == 2


@pytest.fixture
def service(
    store,
    kpi_settings: KpiSettings,
    clock: Callable[[], datetime],
) -> UserStatsService:
    """Create a stats service over the shared store."""
    return UserStatsService(store, kpi_settings, clock)


class TestUserStatsService:
    """Tests for UserStatsService.calculate_user_stats."""

    @pytest.mark.asyncio
    async def test_counts_and_minutes(self, service: UserStatsService, store, fixed_now: datetime) -> None:
        """Test notebook, concept, session and time figures."""
        store.seed(
            {
                "notebooks/n1": {"userId": "u1"},
                "notebooks/n2": {"userId": "u1"},
                "notebooks/n3": {"userId": "u2"},
                "conceptos/c1": {
                    "usuarioId": "u1",
                    "cuadernoId": "n1",
                    "conceptos": [{"dominado": True}, {"dominado": False}, {}],
                },
                "studySessions/a": {"userId": "u1", "duration": 150, "endTime": fixed_now},
                "studySessions/b": {"userId": "u1", "duration": 100},
                "studySessions/c": {"userId": "u2", "duration": 9000, "endTime": fixed_now},
            }
        )

        stats = await service.calculate_user_stats("u1")

        assert stats.total_notebooks == 2
        assert stats.total_concepts == 3
        assert stats.mastered_concepts == 1
        # 250 seconds, truncated
        assert stats.total_study_time_minutes == 4
        assert stats.completed_sessions == 1
        assert stats.current_streak == 0

    @pytest.mark.asyncio
    async def test_concepts_fall_back_to_notebook_link(self, service: UserStatsService, store) -> None:
        """Test concept documents without usuarioId are found through the notebooks."""
        store.seed(
            {
                "notebooks/n1": {"userId": "u1"},
                "conceptos/c1": {"cuadernoId": "n1", "conceptos": [{"dominado": True}, {}]},
                "conceptos/c2": {"cuadernoId": "n9", "conceptos": [{}, {}, {}]},
            }
        )

        stats = await service.calculate_user_stats("u1")

        assert stats.total_concepts == 2
        assert stats.mastered_concepts == 1

    @pytest.mark.asyncio
    async def test_streak_from_completed_sessions(
        self,
        service: UserStatsService,
        store,
        fixed_now: datetime,
    ) -> None:
        """Test only completed-session activities feed the streak."""
        store.seed(
            {
                "userActivities/a0": _activity("u1", fixed_now),
                "userActivities/a1": _activity("u1", fixed_now - timedelta(days=1)),
                "userActivities/a2": _activity("u1", fixed_now - timedelta(days=2)),
                "userActivities/a3": _activity("u1", fixed_now - timedelta(days=3), kind="quiz_completed"),
                "userActivities/a4": _activity("u1", fixed_now - timedelta(days=4)),
                "userActivities/x": _activity("u2", fixed_now - timedelta(days=3)),
            }
        )

        stats = await service.calculate_user_stats("u1")

        assert stats.current_streak == 3

    @pytest.mark.asyncio
    async def test_streak_days_are_local(self, service: UserStatsService, store) -> None:
        """Test activity days are cut in the configured timezone."""
        store.seed(
            {
                # 21:00 on March 11 in Mexico City
                "userActivities/a": _activity("u1", datetime(2025, 3, 12, 3, 0, tzinfo=timezone.utc)),
                # 09:00 on March 10 in Mexico City
                "userActivities/b": _activity("u1", datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)),
            }
        )

        stats = await service.calculate_user_stats("u1")

        assert stats.current_streak == 2

    @pytest.mark.asyncio
    async def test_stats_are_stored(self, service: UserStatsService, store, fixed_now: datetime) -> None:
        """Test the summary document is written with a server timestamp."""
        store.seed({"notebooks/n1": {"userId": "u1"}})

        stats = await service.calculate_user_stats("u1")

        stored = (await store.get(stats_path("u1"))).data
        assert stored == {**stats.to_dict(), "lastUpdated": fixed_now}
        assert stored["totalNotebooks"] == 1
