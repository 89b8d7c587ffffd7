"""Processor error classes.

Errors raised by processors themselves. The node runtime wraps every one
of them in a ``NodeExecutionError`` carrying the job and node context.
"""

from dataclasses import dataclass
from typing import Any


class ProcessorError(Exception):
    """Base exception for processor errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass
class ProcessorValidationError(ProcessorError):
    """Raised when input or output validation fails.

    Attributes:
        processor: Processor type or class name
        errors: List of validation error dictionaries
    """

    processor: str
    errors: list[dict[str, Any]]

    def __post_init__(self) -> None:
        super().__init__(f"Invalid data for {self.processor}: {self.errors}")

    def __str__(self) -> str:
        return f"Invalid data for {self.processor}: {self.errors}"


@dataclass
class ProcessorConfigurationError(ProcessorError):
    """Raised when a node's configuration does not match the config schema.

    Attributes:
        processor: Processor type or class name
        detail: Configuration error description
    """

    processor: str
    detail: str

    def __post_init__(self) -> None:
        super().__init__(f"Invalid configuration for {self.processor}: {self.detail}")

    def __str__(self) -> str:
        return f"Invalid configuration for {self.processor}: {self.detail}"


class ProcessorNotFoundError(ProcessorError):
    """Raised when a processor type is not registered."""

    def __init__(self, processor_type: str):
        super().__init__(f"Processor type '{processor_type}' not found in registry")
        self.processor_type = processor_type

    def __str__(self) -> str:
        return self.message


__all__ = [
    "ProcessorConfigurationError",
    "ProcessorError",
    "ProcessorNotFoundError",
    "ProcessorValidationError",
]
