# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Auth domain: caller token verification."""

from simonkey.domains.auth.jwt import (
    ADMIN_ROLE,
    CallerClaims,
    InvalidTokenError,
    JWTError,
    JWTManager,
    TokenExpiredError,
)

__all__ = [
    "ADMIN_ROLE",
    "CallerClaims",
    "JWTManager",
    "JWTError",
    "TokenExpiredError",
    "InvalidTokenError",
]
