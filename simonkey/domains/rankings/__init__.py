# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rankings domain: per-subject student rankings within an institution."""

from simonkey.domains.rankings.service import (
    BulkRankingResult,
    InvalidInstitutionError,
    RankingResult,
    RankingService,
    RankingServiceError,
)

__all__ = [
    "RankingService",
    "RankingResult",
    "BulkRankingResult",
    "RankingServiceError",
    "InvalidInstitutionError",
]
