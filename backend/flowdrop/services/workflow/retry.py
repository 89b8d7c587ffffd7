"""Failure classification and retry decisions.

Workers do not signal requeue or suspension by raising; the orchestrator
returns a ``RetryDecision`` that the queue adapter applies.
"""

from __future__ import annotations

from enum import Enum

from pydantic import ValidationError

from flowdrop.core.exceptions import ResourceNotFoundError
from flowdrop.services.workflow.exceptions import (
    CompilationError,
    DataFlowError,
    NodeExecutionError,
    NodeTimeoutError,
    ResourceLimitError,
)
from flowdrop.services.workflow.processors.errors import (
    ProcessorConfigurationError,
    ProcessorNotFoundError,
    ProcessorValidationError,
)


class RetryDecision(str, Enum):
    """What the queue adapter does with a message after a failure.

    REQUEUE puts the message back, SUSPEND dead-letters it and CONTINUE
    acknowledges it without further action.
    """

    REQUEUE = "requeue"
    SUSPEND = "suspend"
    CONTINUE = "continue"

    def __str__(self) -> str:
        return self.value


class FailureKind(str, Enum):
    """Classification of a job failure."""

    TEMPORARY = "temporary"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


TEMPORARY_ERROR_TYPES: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    NodeTimeoutError,
)

PERMANENT_ERROR_TYPES: tuple[type[BaseException], ...] = (
    CompilationError,
    DataFlowError,
    ResourceLimitError,
    ResourceNotFoundError,
    ProcessorConfigurationError,
    ProcessorNotFoundError,
    ProcessorValidationError,
    ValidationError,
    ValueError,
    TypeError,
    LookupError,
)

TEMPORARY_KEYWORDS = (
    "connection",
    "timeout",
    "temporary",
    "retry",
    "busy",
    "locked",
    "rate limit",
    "quota exceeded",
)

PERMANENT_KEYWORDS = (
    "not found",
    "invalid",
    "missing",
    "required",
    "not allowed",
    "authentication failed",
    "authorization failed",
    "permission denied",
)


def classify_failure(error: BaseException | str) -> FailureKind:
    """Classify a failure as temporary, permanent or unknown.

    Temporary signals win over permanent ones. Exception types are checked
    before messages; for a ``NodeExecutionError`` the wrapped processor
    error is checked as well.

    Args:
        error: The raised exception, or just its message.

    Returns:
        The failure kind.
    """
    if isinstance(error, BaseException):
        candidates: list[BaseException] = [error]
        if isinstance(error, NodeExecutionError) and error.original_error is not None:
            candidates.append(error.original_error)

        if any(isinstance(e, TEMPORARY_ERROR_TYPES) for e in candidates):
            return FailureKind.TEMPORARY
        # Node ids are not part of the classified message
        reason = error.reason if isinstance(error, NodeExecutionError) else str(error)
        message = reason.lower()
        if any(keyword in message for keyword in TEMPORARY_KEYWORDS):
            return FailureKind.TEMPORARY
        if any(isinstance(e, PERMANENT_ERROR_TYPES) for e in candidates):
            return FailureKind.PERMANENT
    else:
        message = error.lower()
        if any(keyword in message for keyword in TEMPORARY_KEYWORDS):
            return FailureKind.TEMPORARY

    if any(keyword in message for keyword in PERMANENT_KEYWORDS):
        return FailureKind.PERMANENT
    return FailureKind.UNKNOWN


def is_temporary_failure(error: BaseException | str) -> bool:
    return classify_failure(error) is FailureKind.TEMPORARY


def is_permanent_failure(error: BaseException | str) -> bool:
    return classify_failure(error) is FailureKind.PERMANENT


__all__ = [
    "FailureKind",
    "RetryDecision",
    "classify_failure",
    "is_permanent_failure",
    "is_temporary_failure",
]
