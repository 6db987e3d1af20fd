# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for callable function errors."""

import pytest

from simonkey.core.errors import (
    FunctionError,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    UnauthenticatedError,
)


class TestFunctionErrors:
    """Tests for the error hierarchy."""

    @pytest.mark.parametrize(
        ("error_class", "status", "http_status"),
        [
            (UnauthenticatedError, "UNAUTHENTICATED", 401),
            (PermissionDeniedError, "PERMISSION_DENIED", 403),
            (InvalidArgumentError, "INVALID_ARGUMENT", 400),
            (NotFoundError, "NOT_FOUND", 404),
            (InternalError, "INTERNAL", 500),
        ],
    )
    def test_status_and_http_code(self, error_class, status: str, http_status: int) -> None:
        """Test each error maps to its wire status and HTTP code."""
        error = error_class("message")

        assert isinstance(error, FunctionError)
        assert error.status == status
        assert error.http_status == http_status

    def test_to_dict_envelope(self) -> None:
        """Test the serialized error body."""
        error = InvalidArgumentError("userId must be a string", details={"field": "userId"})

        assert error.to_dict() == {
            "status": "INVALID_ARGUMENT",
            "message": "userId must be a string",
            "details": {"field": "userId"},
        }

    def test_empty_details_serialize_as_none(self) -> None:
        """Test errors without details omit them."""
        assert NotFoundError("missing").to_dict()["details"] is None

    def test_str_includes_details(self) -> None:
        """Test the string form mentions the details."""
        assert str(NotFoundError("missing", details={"userId": "u1"})) == (
            "missing - Details: {'userId': 'u1'}"
        )

    def test_internal_error_wraps_original(self) -> None:
        """Test wrapping keeps the original message and type."""
        error = InternalError.wrap(KeyError("cuadernos"))

        assert error.message == "'cuadernos'"
        assert error.details == {"type": "KeyError"}

    def test_internal_error_wraps_messageless_exception(self) -> None:
        """Test the type name is used when the original has no message."""
        assert InternalError.wrap(RuntimeError()).message == "RuntimeError"
