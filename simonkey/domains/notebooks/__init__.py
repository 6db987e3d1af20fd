# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notebook domain: scheduled freeze/unfreeze sweep."""

from simonkey.domains.notebooks.freeze import (
    NOTEBOOK_COLLECTIONS,
    SWEEP_LOG_TYPE,
    FreezeService,
    FreezeSweepResult,
)

__all__ = [
    "FreezeService",
    "FreezeSweepResult",
    "NOTEBOOK_COLLECTIONS",
    "SWEEP_LOG_TYPE",
]
