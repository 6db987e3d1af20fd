# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

Dependencies are used to:
- Get the document store
- Identify the caller of a callable function from its bearer JWT
- Gate the admin endpoints behind the shared admin token

Example:
    @router.post("/functions/{name}")
    async def call_function(
        store: DocumentStore = Depends(get_store),
        caller: CallerClaims = Depends(require_caller),
    ):
        ...
"""

import hmac
import logging
from collections.abc import Callable
from datetime import datetime

from fastapi import Depends, HTTPException, Request, status

from simonkey.core.config import Settings, get_settings
from simonkey.core.errors import UnauthenticatedError
from simonkey.domains.auth import CallerClaims, JWTError, JWTManager
from simonkey.infrastructure.documents import DocumentStore, DocumentStoreError, get_document_store
from simonkey.utils.datetime import utc_now

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_app_settings() -> Settings:
    return get_settings()


def get_clock() -> Callable[[], datetime]:
    """Source of "now" for services. Overridden in tests."""
    return utc_now


def get_store() -> DocumentStore:
    """Get the process-wide document store.

    Raises:
        HTTPException: 503 if the store is not initialized.
    """
    try:
        return get_document_store()
    except DocumentStoreError as e:
        logger.error("Document store unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Document store not initialized",
        )


def get_jwt_manager(settings: Settings = Depends(get_app_settings)) -> JWTManager:
    return JWTManager(settings.jwt)


def require_caller(
    request: Request,
    jwt_manager: JWTManager = Depends(get_jwt_manager),
) -> CallerClaims:
    """Require a caller identity from the bearer JWT.

    Args:
        request: HTTP request.
        jwt_manager: Token verifier.

    Returns:
        Verified caller claims.

    Raises:
        UnauthenticatedError: If the token is missing, invalid or expired.
    """
    token = _bearer_token(request)
    if token is None:
        raise UnauthenticatedError("Authentication required")
    try:
        return jwt_manager.decode_token(token)
    except JWTError as e:
        raise UnauthenticatedError(str(e))


def require_admin_token(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Require the shared admin bearer token.

    Raises:
        HTTPException: 503 if no admin token is configured, 401 if the
            presented token is missing or wrong.
    """
    expected = settings.admin.token
    if expected is None or not expected.get_secret_value():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin endpoints are not configured",
        )

    presented = _bearer_token(request) or ""
    if not hmac.compare_digest(
        presented.encode("utf-8"),
        expected.get_secret_value().encode("utf-8"),
    ):
        logger.warning("Rejected admin request from %s", request.client.host if request.client else "unknown")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
            headers={"WWW-Authenticate": "Bearer"},
        )
