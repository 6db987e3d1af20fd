# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests (services against an in-memory document store)
- Integration tests (the HTTP application)
"""

import os

# Actors must bind to the StubBroker, never to Redis
os.environ["DRAMATIQ_TEST_MODE"] = "true"

from collections.abc import Callable, Generator
from datetime import datetime, timezone

import pytest

from simonkey.core.config import FreezeSettings, KpiSettings, clear_settings_cache
from simonkey.infrastructure.documents import MemoryDocumentStore

# A Wednesday: 09:00 in America/Mexico_City (UTC-6, no DST)
FIXED_NOW = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


# =============================================================================
# Clock and Settings Fixtures
# =============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    """Provide the reference "now" used by every service under test."""
    return FIXED_NOW


@pytest.fixture
def clock(fixed_now: datetime) -> Callable[[], datetime]:
    """Provide a clock frozen at fixed_now."""
    return lambda: fixed_now


@pytest.fixture
def kpi_settings() -> KpiSettings:
    """Provide KPI settings independent of the environment."""
    return KpiSettings(
        timezone="America/Mexico_City",
        max_concurrent_reads=4,
        history_weeks=12,
        peer_ranking_enabled=True,
    )


@pytest.fixture
def freeze_settings() -> FreezeSettings:
    """Provide freeze sweep settings."""
    return FreezeSettings(batch_size=400, default_efactor=2.5)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings so environment patches take effect."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Document Store Fixtures
# =============================================================================


@pytest.fixture
def store(clock: Callable[[], datetime]) -> MemoryDocumentStore:
    """Provide an empty in-memory store whose server timestamps use the clock."""
    return MemoryDocumentStore(clock=clock)


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
