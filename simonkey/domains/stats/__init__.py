# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Stats domain: per-user study statistics summary."""

from simonkey.domains.stats.service import (
    UserStats,
    UserStatsService,
    mastered_in,
    stats_path,
    streak_length,
)

__all__ = [
    "UserStatsService",
    "UserStats",
    "stats_path",
    "mastered_in",
    "streak_length",
]
