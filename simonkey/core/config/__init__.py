# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for Simonkey.

Example:
    >>> from simonkey.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.document_store.backend)
    'memory'
"""

from simonkey.core.config.settings import (
    AdminSettings,
    APISettings,
    CORSSettings,
    DocumentStoreSettings,
    FreezeSettings,
    JWTSettings,
    KpiSettings,
    RedisSettings,
    SchedulerSettings,
    Settings,
    WorkerSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "AdminSettings",
    "APISettings",
    "CORSSettings",
    "DocumentStoreSettings",
    "FreezeSettings",
    "JWTSettings",
    "KpiSettings",
    "RedisSettings",
    "SchedulerSettings",
    "WorkerSettings",
]
