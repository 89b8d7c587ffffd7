"""Common exception classes.

This module defines the root exceptions shared across the application.
Engine-specific errors (compilation, data flow, orchestration, node
execution) build on ``FlowDropError`` in
``flowdrop.services.workflow.exceptions``.
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# Base classes
# =============================================================================


class AppError(Exception):
    """Application base exception."""


class FlowDropError(AppError):
    """Base exception for engine errors carrying a machine-readable code.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code for API responses.
        details: Additional error context as dictionary.
    """

    error_code_default = "FLOWDROP_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.error_code_default
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for API responses and job records."""
        return {
            "error": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Lookup errors
# =============================================================================


class ResourceNotFoundError(AppError):
    """Raised when a pipeline or job cannot be found.

    Attributes:
        resource_type: Resource type (e.g. "pipeline", "job")
        resource_id: Identifier that was looked up
    """

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type.capitalize()} {resource_id} not found")


__all__ = [
    "AppError",
    "FlowDropError",
    "ResourceNotFoundError",
]
