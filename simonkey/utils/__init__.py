# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for Simonkey.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and calendar-week operations
"""

from simonkey.utils.datetime import (
    WEEKDAY_KEYS,
    ensure_utc,
    iso_week_label,
    local_date,
    parse_iso,
    seconds_to_minutes,
    to_datetime,
    utc_from_timestamp,
    utc_now,
    week_bounds,
    weekday_key,
)
from simonkey.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "WEEKDAY_KEYS",
    "utc_now",
    "utc_from_timestamp",
    "ensure_utc",
    "parse_iso",
    "to_datetime",
    "week_bounds",
    "weekday_key",
    "iso_week_label",
    "local_date",
    "seconds_to_minutes",
]
