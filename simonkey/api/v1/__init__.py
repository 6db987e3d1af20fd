# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    functions: Callable functions (KPIs, rankings, stats).
    admin: Admin maintenance triggers.
"""

from fastapi import APIRouter

from simonkey.api.v1 import admin, functions

# Mounted under API_PREFIX (default /api/v1) by the app factory
router = APIRouter()

# Include domain routers
router.include_router(functions.router, prefix="/functions", tags=["Functions"])
router.include_router(admin.router, prefix="/admin", tags=["Admin"])

__all__ = ["router"]
