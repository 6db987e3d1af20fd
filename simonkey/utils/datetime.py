# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for Simonkey.

All timestamps handled by the services are timezone-aware UTC datetimes.
Documents written by different clients carry timestamps in several shapes
(native datetimes, ISO strings, epoch seconds or milliseconds, and
``{seconds, nanoseconds}`` maps); to_datetime() normalizes all of them.

Calendar-week helpers cut weeks Monday to Sunday in a configurable local
timezone, because students see their weekly chart in local time.

Usage:
------
    from simonkey.utils.datetime import utc_now, to_datetime

    now = utc_now()
    started = to_datetime(session.get("startTime"))
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

WEEKDAY_KEYS: tuple[str, ...] = (
    "lunes",
    "martes",
    "miercoles",
    "jueves",
    "viernes",
    "sabado",
    "domingo",
)

# Epoch values above this are milliseconds (year 5138 in seconds)
_MILLIS_THRESHOLD = 100_000_000_000


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def utc_from_timestamp(timestamp: float) -> datetime:
    """Create a timezone-aware UTC datetime from a Unix timestamp.

    Args:
        timestamp: Unix timestamp (seconds since epoch).

    Returns:
        Timezone-aware UTC datetime.
    """
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Naive datetimes are assumed to be UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string.

    Args:
        iso_string: ISO 8601 formatted string.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if iso_string is None:
        return None

    dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    return ensure_utc(dt)


def to_datetime(value: Any) -> datetime | None:
    """Normalize a stored timestamp value to an aware UTC datetime.

    Args:
        value: A datetime, ISO string, epoch number (seconds or
            milliseconds) or a ``{seconds, nanoseconds}`` mapping.

    Returns:
        Timezone-aware UTC datetime, or None if the value is missing or
        cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _MILLIS_THRESHOLD else value
        return utc_from_timestamp(seconds)

    if isinstance(value, str):
        try:
            return parse_iso(value)
        except ValueError:
            return None

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return None
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        return utc_from_timestamp(float(seconds) + float(nanos) / 1e9)

    return None


def week_bounds(now: datetime, tz_name: str) -> tuple[datetime, datetime]:
    """Get the calendar week containing ``now``.

    The week starts Monday 00:00 local time and ends before the following
    Monday 00:00.

    Args:
        now: Reference time (aware).
        tz_name: IANA timezone name used to cut the week.

    Returns:
        Tuple of (start, end) as aware UTC datetimes, end exclusive.
    """
    local = ensure_utc(now).astimezone(ZoneInfo(tz_name))
    # Same-zone arithmetic on aware datetimes is wall-clock arithmetic
    start = (local - timedelta(days=local.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    end = start + timedelta(days=7)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def weekday_key(dt: datetime, tz_name: str) -> str:
    """Get the Spanish weekday key for a datetime in local time.

    Args:
        dt: Aware datetime.
        tz_name: IANA timezone name.

    Returns:
        One of WEEKDAY_KEYS.
    """
    return WEEKDAY_KEYS[ensure_utc(dt).astimezone(ZoneInfo(tz_name)).weekday()]


def iso_week_label(dt: datetime, tz_name: str) -> str:
    """Format the ISO week of a datetime as ``YYYY-Www``.

    Args:
        dt: Aware datetime.
        tz_name: IANA timezone name.

    Returns:
        ISO week label, e.g. "2025-W07".
    """
    year, week, _ = ensure_utc(dt).astimezone(ZoneInfo(tz_name)).isocalendar()
    return f"{year}-W{week:02d}"


def local_date(dt: datetime, tz_name: str) -> date:
    """Calendar date of a datetime in the given timezone."""
    return ensure_utc(dt).astimezone(ZoneInfo(tz_name)).date()


def seconds_to_minutes(seconds: float) -> int:
    """Convert a duration in seconds to whole minutes (rounded half up)."""
    return int(seconds / 60 + 0.5) if seconds > 0 else 0
