"""Error categorization and recovery dispatch.

Classifies a raised error into a category by matching registered rules
(exception class, message pattern, error code) and dispatches the recovery
strategy registered for that category. The handler reports; it never
raises on behalf of the failing component.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from flowdrop.services.workflow.exceptions import (
    CompilationError,
    DataFlowError,
    NodeExecutionError,
    OrchestrationError,
)

# A recovery strategy receives the error and its context and returns
# ``(success, message)``.
RecoveryStrategy = Callable[[BaseException, Mapping[str, Any]], tuple[bool, str]]


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


UNKNOWN_CATEGORY = "unknown"

TYPE_CATEGORIES: tuple[tuple[type[BaseException], str], ...] = (
    (DataFlowError, "data_flow"),
    (CompilationError, "compilation"),
    (OrchestrationError, "orchestration"),
    (NodeExecutionError, "node_execution"),
)

CATEGORY_SEVERITY: dict[str, ErrorSeverity] = {
    "data_flow": ErrorSeverity.MEDIUM,
    "compilation": ErrorSeverity.HIGH,
    "orchestration": ErrorSeverity.HIGH,
    "node_execution": ErrorSeverity.MEDIUM,
    "resource": ErrorSeverity.CRITICAL,
    "timeout": ErrorSeverity.HIGH,
    "validation": ErrorSeverity.MEDIUM,
    UNKNOWN_CATEGORY: ErrorSeverity.LOW,
}

RESOURCE_EXHAUSTION_PATTERNS = (
    "out of memory",
    "memory exhausted",
    "resource exhausted",
    "disk full",
)

BUILTIN_RECOVERY: dict[str, tuple[tuple[str | None, str, str], ...]] = {
    # category: ((message substring or None, action, description), ...)
    "data_flow": (
        ("missing", "provide_defaults", "Substitute default values for missing inputs"),
        ("type", "type_conversion", "Convert input values to the declared types"),
    ),
    "validation": ((None, "type_conversion", "Convert input values to the declared types"),),
    "orchestration": (
        ("execution failed", "retry_failed_nodes", "Retry the failed nodes"),
    ),
    "timeout": ((None, "increase_timeout", "Increase the execution timeout"),),
    "resource": ((None, "resource_cleanup", "Release resources before retrying"),),
}


@dataclass
class RecoveryResult:
    """Outcome of a recovery attempt."""

    action: str
    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, "success": self.success, "message": self.message}


@dataclass
class ErrorReport:
    """Result of ``ErrorHandler.handle_error``.

    Attributes:
        category: Matched category, ``unknown`` if no rule matched
        severity: low, medium, high or critical
        message: The error message
        error_type: Class name of the error
        context: Caller supplied context
        recovery: Recovery action taken
        timestamp: When the error was handled
    """

    category: str
    severity: ErrorSeverity
    message: str
    error_type: str
    recovery: RecoveryResult
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_critical(self) -> bool:
        return self.severity is ErrorSeverity.CRITICAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "severity": str(self.severity),
            "message": self.message,
            "error_type": self.error_type,
            "context": self.context,
            "recovery": self.recovery.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


class ErrorHandler:
    """Categorizes errors and dispatches recovery strategies.

    A category rule is a mapping with any of ``class`` (exception type or
    class name), ``message_pattern`` (case-insensitive regex) and ``code``
    (``error_code`` of a FlowDrop error). Every criterion given in a rule
    must match; the first fully matching rule wins, registered categories
    being checked in registration order before the exception type mapping.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._categories: dict[str, list[dict[str, Any]]] = {}
        self._strategies: dict[str, RecoveryStrategy] = {}
        self._register_default_categories()

    def _register_default_categories(self) -> None:
        self.register_error_category("validation", [{"message_pattern": r"validation"}])
        self.register_error_category("timeout", [{"message_pattern": r"timeout|timed out"}])
        self.register_error_category(
            "resource", [{"message_pattern": r"memory|disk|resource"}]
        )

    def register_error_category(self, category: str, rules: Iterable[Mapping[str, Any]]) -> None:
        """Register (or extend) an error category.

        Raises:
            ValueError: If the category name is empty or a rule has no criteria.
        """
        if not category:
            raise ValueError("Error category name is required")
        compiled_rules = []
        for rule in rules:
            if not any(key in rule for key in ("class", "message_pattern", "code")):
                raise ValueError(f"Rule for category '{category}' has no criteria")
            compiled = dict(rule)
            if "message_pattern" in compiled:
                compiled["message_pattern"] = re.compile(compiled["message_pattern"], re.IGNORECASE)
            compiled_rules.append(compiled)
        self._categories.setdefault(category, []).extend(compiled_rules)

    def register_recovery_strategy(self, category: str, strategy: RecoveryStrategy) -> None:
        self._strategies[category] = strategy

    @property
    def categories(self) -> list[str]:
        return list(self._categories)

    def categorize(self, error: BaseException) -> str:
        """Category of an error."""
        for category, rules in self._categories.items():
            if any(self._matches(rule, error) for rule in rules):
                return category
        for error_type, category in TYPE_CATEGORIES:
            if isinstance(error, error_type):
                return category
        return UNKNOWN_CATEGORY

    def severity_for(self, category: str, message: str) -> ErrorSeverity:
        """Severity from the category, overridden by the message wording."""
        lowered = message.lower()
        if "fatal" in lowered or "critical" in lowered:
            return ErrorSeverity.CRITICAL
        if any(pattern in lowered for pattern in RESOURCE_EXHAUSTION_PATTERNS):
            return ErrorSeverity.CRITICAL
        if "warning" in lowered or "deprecated" in lowered:
            return ErrorSeverity.LOW
        return CATEGORY_SEVERITY.get(category, ErrorSeverity.MEDIUM)

    def handle_error(
        self,
        error: BaseException,
        context: Mapping[str, Any] | None = None,
    ) -> ErrorReport:
        """Categorize an error and attempt recovery.

        Args:
            error: The raised error.
            context: Where it happened (pipeline, job, node ids).

        Returns:
            ErrorReport describing the category, severity and recovery.
        """
        context = dict(context or {})
        message = str(error)
        category = self.categorize(error)
        severity = self.severity_for(category, message)
        recovery = self._attempt_recovery(category, error, context)

        report = ErrorReport(
            category=category,
            severity=severity,
            message=message,
            error_type=type(error).__name__,
            recovery=recovery,
            context=context,
        )

        level = logging.CRITICAL if report.is_critical else logging.ERROR
        self.logger.log(
            level,
            "Handled %s error: %s",
            category,
            message,
            extra={
                "context": {
                    **context,
                    "category": category,
                    "severity": str(severity),
                    "recovery_action": recovery.action,
                }
            },
        )
        return report

    def handle_batch_errors(
        self,
        errors: Iterable[BaseException],
        context: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Handle several errors at once.

        Returns:
            ``{"results": [...], "critical_errors": [...], "total_errors": n,
            "critical_count": n}``
        """
        results = [self.handle_error(error, context) for error in errors]
        critical = [report for report in results if report.is_critical]
        return {
            "results": results,
            "critical_errors": critical,
            "total_errors": len(results),
            "critical_count": len(critical),
        }

    def _attempt_recovery(
        self,
        category: str,
        error: BaseException,
        context: Mapping[str, Any],
    ) -> RecoveryResult:
        strategy = self._strategies.get(category)
        if strategy is not None:
            try:
                success, message = strategy(error, context)
            except Exception as e:
                self.logger.exception(
                    "Recovery strategy for %s failed",
                    category,
                    extra={"context": {"category": category}},
                )
                return RecoveryResult("custom_strategy", False, f"Recovery strategy failed: {e}")
            return RecoveryResult("custom_strategy", bool(success), message)

        message = str(error).lower()
        for needle, action, description in BUILTIN_RECOVERY.get(category, ()):
            if needle is None or needle in message:
                return RecoveryResult(action, True, description)
        return RecoveryResult("none", False, "No recovery strategy available")

    @staticmethod
    def _matches(rule: Mapping[str, Any], error: BaseException) -> bool:
        expected_class = rule.get("class")
        if expected_class is not None:
            if isinstance(expected_class, str):
                names = {cls.__name__ for cls in type(error).__mro__}
                if expected_class not in names:
                    return False
            elif not isinstance(error, expected_class):
                return False

        pattern = rule.get("message_pattern")
        if pattern is not None and not pattern.search(str(error)):
            return False

        code = rule.get("code")
        if code is not None and getattr(error, "error_code", None) != code:
            return False

        return True


__all__ = [
    "ErrorHandler",
    "ErrorReport",
    "ErrorSeverity",
    "RecoveryResult",
    "RecoveryStrategy",
]
