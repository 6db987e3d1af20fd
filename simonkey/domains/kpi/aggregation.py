# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pure aggregation helpers for KPI computation.

Nothing in this module touches the document store. Services feed raw
documents in, and get accumulators, ranks and weekly buckets out. Keeping
the arithmetic here makes it testable without any fixtures.

Rounding follows the dashboard's convention of half-up rounding (JavaScript
``Math.round``), not Python's banker's rounding.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from simonkey.domains.kpi.schemas import DayHistogram, NotebookKpis
from simonkey.utils.datetime import WEEKDAY_KEYS, seconds_to_minutes, to_datetime, weekday_key

SMART_MODE = "smart"


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round half away from zero for positive values, like Math.round.

    Args:
        value: Number to round.
        ndigits: Decimal places to keep.

    Returns:
        Rounded value. An int when ndigits is 0.
    """
    factor = 10**ndigits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if ndigits == 0 else rounded


def percentage(part: float, whole: float) -> int:
    """Whole-number percentage, 0 when whole is 0."""
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


def session_seconds(session: dict[str, Any]) -> float:
    """Duration of a study session in seconds.

    Reads ``duration``, then ``metrics.sessionDuration``, then
    ``metrics.timeSpent``, and finally the span between start and end time.
    """
    for value in (
        session.get("duration"),
        (session.get("metrics") or {}).get("sessionDuration"),
        (session.get("metrics") or {}).get("timeSpent"),
    ):
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            return float(value)

    start = to_datetime(session.get("startTime"))
    end = to_datetime(session.get("endTime"))
    if start is not None and end is not None and end > start:
        return (end - start).total_seconds()
    return 0.0


def session_start(session: dict[str, Any]) -> datetime | None:
    """When a study session started."""
    return to_datetime(session.get("startTime")) or to_datetime(session.get("createdAt"))


def is_smart_session(session: dict[str, Any]) -> bool:
    return session.get("mode") == SMART_MODE


def quiz_score(result: dict[str, Any]) -> float:
    """Score of a quiz result, preferring finalScore over score."""
    for key in ("finalScore", "score"):
        value = result.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return 0.0


def quiz_seconds(result: dict[str, Any]) -> float:
    value = result.get("totalTime")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        return float(value)
    return 0.0


def quiz_time(result: dict[str, Any]) -> datetime | None:
    """When a quiz was taken."""
    return to_datetime(result.get("timestamp")) or to_datetime(result.get("createdAt"))


def count_concepts(concept_documents: list[dict[str, Any]]) -> int:
    """Number of concept records across concept documents."""
    total = 0
    for document in concept_documents:
        concepts = document.get("conceptos")
        if isinstance(concepts, list):
            total += len(concepts)
    return total


@dataclass(frozen=True)
class RankPosition:
    """Position of one score within a class.

    Attributes:
        position: 1-based competition rank (ties share a position).
        total: Class size including the ranked student.
        percentile: Whole-number percentile.
    """

    position: int
    total: int
    percentile: int


def percentile_for(position: int, total: int) -> int:
    """Percentile of a position within a class of ``total`` students."""
    if total <= 0:
        return 50
    return round_half_up((total - position + 1) / total * 100)


def rank_among(score: float, peer_scores: list[float]) -> RankPosition:
    """Rank a score against the scores of the other class members.

    Args:
        score: The ranked student's score.
        peer_scores: Scores of every other member of the class.

    Returns:
        RankPosition for the student.
    """
    total = len(peer_scores) + 1
    position = 1 + sum(1 for peer in peer_scores if peer > score)
    return RankPosition(position=position, total=total, percentile=percentile_for(position, total))


def rank_descending(scores: dict[str, float]) -> dict[str, RankPosition]:
    """Rank every member of a class by score, highest first.

    Ties share a position. Members are ordered by id within ties so the
    result is deterministic.
    """
    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    total = len(ordered)
    result: dict[str, RankPosition] = {}
    position = 0
    previous: float | None = None
    for index, (member_id, score) in enumerate(ordered, start=1):
        if previous is None or score != previous:
            position = index
            previous = score
        result[member_id] = RankPosition(position, total, percentile_for(position, total))
    return result


@dataclass
class NotebookAccumulator:
    """Running totals for one notebook while folding activity records."""

    notebook_id: str
    title: str = ""
    subject_id: str | None = None
    concept_count: int = 0

    smart_seconds: float = 0.0
    free_seconds: float = 0.0
    quiz_seconds: float = 0.0

    smart_total: int = 0
    smart_successful: int = 0
    free_count: int = 0
    max_quiz_score: float = 0.0

    # Latest known mastery state per concept id
    mastery: dict[str, bool] = field(default_factory=dict)

    def add_session(self, session: dict[str, Any]) -> None:
        """Fold one study session. Sessions must arrive in start order."""
        seconds = session_seconds(session)
        if is_smart_session(session):
            self.smart_total += 1
            if session.get("validated") is True:
                self.smart_successful += 1
            self.smart_seconds += seconds
        else:
            self.free_count += 1
            self.free_seconds += seconds

        for concept in session.get("conceptsReviewed") or []:
            if isinstance(concept, dict) and concept.get("id"):
                self.mastery[str(concept["id"])] = bool(concept.get("mastered"))

    def add_quiz(self, result: dict[str, Any], counts_for_score: bool = True) -> None:
        """Fold one quiz or mini-quiz result.

        Args:
            result: Quiz result document.
            counts_for_score: Whether the result can raise maxQuizScore.
                Mini-quizzes only add time.
        """
        self.quiz_seconds += quiz_seconds(result)
        if counts_for_score:
            self.max_quiz_score = max(self.max_quiz_score, quiz_score(result))

    @property
    def score(self) -> float:
        """maxQuizScore times the number of successful smart studies."""
        return round_half_up(self.max_quiz_score * self.smart_successful, 2)

    @property
    def mastered_count(self) -> int:
        return sum(1 for mastered in self.mastery.values() if mastered)

    def to_kpis(self) -> NotebookKpis:
        """Build the notebook figures, ranked as the only class member."""
        smart_minutes = seconds_to_minutes(self.smart_seconds)
        free_minutes = seconds_to_minutes(self.free_seconds)
        quiz_minutes = seconds_to_minutes(self.quiz_seconds)
        mastered = self.mastered_count
        reviewed = len(self.mastery)

        return NotebookKpis(
            notebook_id=self.notebook_id,
            title=self.title,
            subject_id=self.subject_id,
            score=self.score,
            max_quiz_score=self.max_quiz_score,
            concept_count=self.concept_count,
            mastered_concepts=mastered,
            unmastered_concepts=reviewed - mastered,
            mastery_percentage=percentage(mastered, max(self.concept_count, reviewed)),
            study_minutes=smart_minutes + free_minutes + quiz_minutes,
            smart_study_minutes=smart_minutes,
            free_study_minutes=free_minutes,
            quiz_minutes=quiz_minutes,
            smart_studies=self.smart_successful,
            free_studies=self.free_count,
            smart_studies_successful=self.smart_successful,
            smart_studies_total=self.smart_total,
            smart_success_percentage=percentage(self.smart_successful, self.smart_total),
        )


class WeeklyBuckets:
    """Time and activity per weekday within one calendar week.

    Args:
        start: Inclusive week start (aware UTC).
        end: Exclusive week end (aware UTC).
        tz_name: Timezone used to assign a record to a weekday.
    """

    def __init__(self, start: datetime, end: datetime, tz_name: str) -> None:
        self.start = start
        self.end = end
        self.tz_name = tz_name
        self._seconds: dict[str, float] = {day: 0.0 for day in WEEKDAY_KEYS}
        self._counts: dict[str, dict[str, int]] = {
            day: {"quiz": 0, "smart": 0, "free": 0} for day in WEEKDAY_KEYS
        }

    def contains(self, when: datetime | None) -> bool:
        return when is not None and self.start <= when < self.end

    def add(self, when: datetime | None, seconds: float, kind: str) -> bool:
        """Add a record if it falls inside the week.

        Args:
            when: Record time.
            seconds: Time spent.
            kind: "quiz", "smart" or "free".

        Returns:
            True if the record was counted.
        """
        if not self.contains(when):
            return False
        day = weekday_key(when, self.tz_name)
        self._seconds[day] += seconds
        self._counts[day][kind] += 1
        return True

    def add_session(self, session: dict[str, Any]) -> bool:
        kind = "smart" if is_smart_session(session) else "free"
        return self.add(session_start(session), session_seconds(session), kind)

    def add_quiz(self, result: dict[str, Any]) -> bool:
        return self.add(quiz_time(result), quiz_seconds(result), "quiz")

    def minutes(self) -> dict[str, int]:
        """Minutes per weekday key."""
        return {day: seconds_to_minutes(seconds) for day, seconds in self._seconds.items()}

    def histogram(self) -> dict[str, DayHistogram]:
        minutes = self.minutes()
        return {
            day: DayHistogram(
                total_minutes=minutes[day],
                quiz_sessions=counts["quiz"],
                smart_sessions=counts["smart"],
                free_sessions=counts["free"],
            )
            for day, counts in self._counts.items()
        }
