# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for JWT token utilities.

Tests the JWTManager class and caller claims.
"""

import time

import pytest
from jose import jwt
from pydantic import SecretStr

from simonkey.core.config import JWTSettings
from simonkey.domains.auth import (
    CallerClaims,
    InvalidTokenError,
    JWTManager,
    TokenExpiredError,
)

SECRET = "test-secret-key-for-jwt-testing"


@pytest.fixture
def jwt_settings() -> JWTSettings:
    """Create JWT settings for tests."""
    return JWTSettings(secret_key=SecretStr(SECRET), algorithm="HS256")


@pytest.fixture
def jwt_manager(jwt_settings: JWTSettings) -> JWTManager:
    """Create JWT manager with test settings."""
    return JWTManager(jwt_settings)


class TestJWTManager:
    """Tests for JWTManager class."""

    def test_create_and_decode_token(self, jwt_manager: JWTManager) -> None:
        """Test that a created token decodes to the same claims."""
        token = jwt_manager.create_token(user_id="user-123", email="ana@example.com")

        claims = jwt_manager.decode_token(token)

        assert isinstance(claims, CallerClaims)
        assert claims.sub == "user-123"
        assert claims.email == "ana@example.com"
        assert claims.role is None
        assert claims.is_admin is False
        assert claims.exp > claims.iat

    def test_admin_role(self, jwt_manager: JWTManager) -> None:
        """Test that role=admin marks an administrator."""
        claims = jwt_manager.decode_token(jwt_manager.create_token("root", role="admin"))

        assert claims.is_admin is True

    def test_other_roles_are_not_admin(self, jwt_manager: JWTManager) -> None:
        """Test that only the admin role grants admin rights."""
        claims = jwt_manager.decode_token(jwt_manager.create_token("t1", role="teacher"))

        assert claims.role == "teacher"
        assert claims.is_admin is False

    def test_expired_token_raises(self, jwt_manager: JWTManager) -> None:
        """Test that an expired token raises TokenExpiredError."""
        token = jwt_manager.create_token("user-123", expires_minutes=-1)

        with pytest.raises(TokenExpiredError):
            jwt_manager.decode_token(token)

    def test_wrong_secret_raises(self, jwt_manager: JWTManager) -> None:
        """Test that a token signed with another key is rejected."""
        other = JWTManager(JWTSettings(secret_key=SecretStr("another-secret")))
        token = other.create_token("user-123")

        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token(token)

    def test_malformed_token_raises(self, jwt_manager: JWTManager) -> None:
        """Test that garbage is rejected."""
        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token("not-a-jwt")

    def test_token_without_subject_raises(self, jwt_manager: JWTManager) -> None:
        """Test that a signed token without sub is rejected."""
        token = jwt.encode({"exp": int(time.time()) + 60}, SECRET, algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            jwt_manager.decode_token(token)

    def test_audience_is_checked(self) -> None:
        """Test tokens for another audience are rejected."""
        ours = JWTManager(JWTSettings(secret_key=SecretStr(SECRET), audience="simonkey"))
        theirs = JWTManager(JWTSettings(secret_key=SecretStr(SECRET), audience="elsewhere"))

        assert ours.decode_token(ours.create_token("user-123")).sub == "user-123"
        with pytest.raises(InvalidTokenError):
            ours.decode_token(theirs.create_token("user-123"))

    def test_verify_token(self, jwt_manager: JWTManager) -> None:
        """Test verify_token returns a boolean."""
        assert jwt_manager.verify_token(jwt_manager.create_token("user-123")) is True
        assert jwt_manager.verify_token("invalid") is False
