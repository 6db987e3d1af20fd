# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""JWT verification for callable functions.

Callers present a bearer JWT signed with JWT_SECRET_KEY. The ``sub`` claim
is the user id and ``role == "admin"`` marks an administrator.

Example:
    >>> from simonkey.core.config import get_settings
    >>> jwt_manager = JWTManager(get_settings().jwt)
    >>> token = jwt_manager.create_token(user_id="user-123")
    >>> claims = jwt_manager.decode_token(token)
"""

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError as JoseJWTError, jwt
from pydantic import BaseModel, ValidationError

from simonkey.core.config.settings import JWTSettings

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class CallerClaims(BaseModel):
    """Verified claims of a caller.

    Attributes:
        sub: Subject (user ID).
        role: Optional role; "admin" grants cross-user access.
        email: Caller email, if present.
        exp: Expiration timestamp.
        iat: Issued at timestamp.
    """

    sub: str
    role: str | None = None
    email: str | None = None
    exp: int | None = None
    iat: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class JWTError(Exception):
    """Base exception for JWT operations."""

    pass


class TokenExpiredError(JWTError):
    """Raised when a token has expired."""

    pass


class InvalidTokenError(JWTError):
    """Raised when a token is invalid."""

    pass


class JWTManager:
    """JWT token creation and validation.

    Attributes:
        _settings: JWT configuration settings.
    """

    def __init__(self, settings: JWTSettings) -> None:
        self._settings = settings

    def create_token(
        self,
        user_id: str,
        role: str | None = None,
        email: str | None = None,
        expires_minutes: int = 60,
    ) -> str:
        """Create a signed caller token.

        Used by internal tooling and tests; production callers get their
        tokens from the identity provider.

        Args:
            user_id: User identifier.
            role: Optional role claim.
            email: Optional email claim.
            expires_minutes: Lifetime of the token.

        Returns:
            JWT string.
        """
        now = datetime.now(timezone.utc)
        payload: dict = {
            "sub": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
        }
        if role is not None:
            payload["role"] = role
        if email is not None:
            payload["email"] = email
        if self._settings.audience:
            payload["aud"] = self._settings.audience

        return jwt.encode(
            payload,
            self._settings.secret_key.get_secret_value(),
            algorithm=self._settings.algorithm,
        )

    def decode_token(self, token: str) -> CallerClaims:
        """Decode and validate a caller token.

        Args:
            token: JWT token string.

        Returns:
            CallerClaims with the verified claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid or lacks a subject.
        """
        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key.get_secret_value(),
                algorithms=[self._settings.algorithm],
                audience=self._settings.audience,
            )
            return CallerClaims.model_validate(payload)
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except (JoseJWTError, ValidationError) as e:
            logger.warning("Token decode failed: %s", str(e))
            raise InvalidTokenError(f"Invalid token: {str(e)}")

    def verify_token(self, token: str) -> bool:
        """Check whether a token is valid."""
        try:
            self.decode_token(token)
            return True
        except JWTError:
            return False
