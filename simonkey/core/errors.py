# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typed errors surfaced to function callers.

This module defines the exception hierarchy returned by callable functions:
- FunctionError: Base exception carrying a wire code and details
- UnauthenticatedError: Caller did not present a valid identity
- PermissionDeniedError: Caller is not allowed to act on the target
- InvalidArgumentError: Request payload is malformed or incomplete
- NotFoundError: Requested document does not exist
- InternalError: Unexpected failure, original message attached
"""

from typing import Any


class FunctionError(Exception):
    """Base exception for errors returned to callable function clients.

    Attributes:
        code: Wire error code (e.g. "invalid-argument").
        http_status: HTTP status used by the API layer.
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    code: str = "internal"
    http_status: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the function error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status(self) -> str:
        """Upper snake case status name, e.g. INVALID_ARGUMENT."""
        return self.code.upper().replace("-", "_")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the callable error envelope."""
        return {
            "status": self.status,
            "message": self.message,
            "details": self.details or None,
        }

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class UnauthenticatedError(FunctionError):
    """Raised when the caller has no valid identity."""

    code = "unauthenticated"
    http_status = 401


class PermissionDeniedError(FunctionError):
    """Raised when the caller may not act on the requested resource."""

    code = "permission-denied"
    http_status = 403


class InvalidArgumentError(FunctionError):
    """Raised when a request argument is missing or malformed."""

    code = "invalid-argument"
    http_status = 400


class NotFoundError(FunctionError):
    """Raised when a requested document does not exist."""

    code = "not-found"
    http_status = 404


class InternalError(FunctionError):
    """Raised for unexpected failures. Wraps the original message."""

    code = "internal"
    http_status = 500

    @classmethod
    def wrap(cls, error: Exception) -> "InternalError":
        """Build an internal error from an arbitrary exception.

        Args:
            error: The exception that escaped the operation.

        Returns:
            InternalError carrying the original message and type.
        """
        return cls(str(error) or type(error).__name__, details={"type": type(error).__name__})
