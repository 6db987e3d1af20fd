# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User study statistics.

Computes the profile summary shown next to the dashboard and stores it at
``users/{uid}/stats/summary``.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from simonkey.core.config import KpiSettings, get_settings
from simonkey.domains.kpi.aggregation import count_concepts, session_seconds
from simonkey.domains.kpi.lookups import query_or_empty
from simonkey.infrastructure.documents import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, FieldFilter
from simonkey.utils.datetime import local_date, to_datetime, utc_now

logger = logging.getLogger(__name__)

STREAK_ACTIVITY_TYPE = "study_session_completed"
STREAK_WINDOW_DAYS = 30


def stats_path(user_id: str) -> str:
    return f"users/{user_id}/stats/summary"


@dataclass
class UserStats:
    """Study statistics of one user."""

    total_notebooks: int = 0
    total_concepts: int = 0
    mastered_concepts: int = 0
    total_study_time_minutes: int = 0
    completed_sessions: int = 0
    current_streak: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored document shape."""
        return {
            "totalNotebooks": self.total_notebooks,
            "totalConcepts": self.total_concepts,
            "masteredConcepts": self.mastered_concepts,
            "totalStudyTimeMinutes": self.total_study_time_minutes,
            "completedSessions": self.completed_sessions,
            "currentStreak": self.current_streak,
        }


def mastered_in(concept_documents: list[dict[str, Any]]) -> int:
    """Number of concept records flagged ``dominado``."""
    mastered = 0
    for document in concept_documents:
        concepts = document.get("conceptos")
        if isinstance(concepts, list):
            mastered += sum(1 for c in concepts if isinstance(c, dict) and c.get("dominado"))
    return mastered


def streak_length(activity_days: set[date], today: date) -> int:
    """Consecutive active days ending today, or yesterday if today is idle.

    Args:
        activity_days: Local calendar dates with at least one activity.
        today: Local calendar date of "now".

    Returns:
        Streak length in days, at most STREAK_WINDOW_DAYS.
    """
    day = today if today in activity_days else today - timedelta(days=1)
    streak = 0
    while day in activity_days and streak < STREAK_WINDOW_DAYS:
        streak += 1
        day -= timedelta(days=1)
    return streak


class UserStatsService:
    """Calculates and stores a user's study statistics.

    Args:
        store: Document store.
        settings: KPI settings, used for the local timezone of streak days.
        clock: Source of "now".
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

    async def calculate_user_stats(self, user_id: str) -> UserStats:
        """Compute and store the statistics of a user.

        Args:
            user_id: User identifier.

        Returns:
            The computed statistics.
        """
        now = self._clock()
        notebooks, concepts, sessions, activities = await asyncio.gather(
            query_or_empty(
                self._store, "notebooks", [FieldFilter("userId", "==", user_id)], what="notebooks"
            ),
            query_or_empty(
                self._store, "conceptos", [FieldFilter("usuarioId", "==", user_id)], what="concepts"
            ),
            query_or_empty(
                self._store,
                "studySessions",
                [FieldFilter("userId", "==", user_id)],
                what="study sessions",
            ),
            self._recent_activities(user_id),
        )

        concept_documents = [c.data or {} for c in concepts]
        if not concept_documents:
            # Older concept documents only carry the notebook link
            for notebook in notebooks:
                by_notebook = await query_or_empty(
                    self._store,
                    "conceptos",
                    [FieldFilter("cuadernoId", "==", notebook.id)],
                    what="notebook concepts",
                )
                concept_documents.extend(d.data or {} for d in by_notebook)

        session_data = [s.data or {} for s in sessions]
        total_seconds = sum(session_seconds(s) for s in session_data)

        activity_days = {
            local_date(when, self._settings.timezone)
            for a in activities
            if (when := to_datetime(a.get("timestamp"))) is not None
        }

        stats = UserStats(
            total_notebooks=len(notebooks),
            total_concepts=count_concepts(concept_documents),
            mastered_concepts=mastered_in(concept_documents),
            total_study_time_minutes=int(total_seconds // 60),
            completed_sessions=sum(1 for s in session_data if s.get("endTime")),
            current_streak=streak_length(activity_days, local_date(now, self._settings.timezone)),
        )

        await self._store.set(stats_path(user_id), {**stats.to_dict(), "lastUpdated": SERVER_TIMESTAMP})
        logger.info(
            "Stats calculated for user %s: notebooks=%d, concepts=%d, streak=%d",
            user_id,
            stats.total_notebooks,
            stats.total_concepts,
            stats.current_streak,
        )
        return stats

    async def _recent_activities(self, user_id: str) -> list[DocumentSnapshot]:
        try:
            return await self._store.query(
                "userActivities",
                [
                    FieldFilter("userId", "==", user_id),
                    FieldFilter("type", "==", STREAK_ACTIVITY_TYPE),
                ],
                order_by="timestamp",
                descending=True,
                limit=STREAK_WINDOW_DAYS,
            )
        except Exception:
            logger.warning("Failed to load activities for user %s", user_id, exc_info=True)
            return []
