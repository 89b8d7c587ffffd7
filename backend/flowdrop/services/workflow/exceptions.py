"""Compilation, data flow and execution exceptions.

This module defines the engine's error taxonomy. Every error carries a
machine-readable ``error_code`` and a ``details`` dictionary so that the
error handler, the job records and the status API can report it without
parsing messages.
"""

from __future__ import annotations

from typing import Any

from flowdrop.core.exceptions import FlowDropError

# ============================================================================
# Compilation Exceptions
# ============================================================================


class CompilationError(FlowDropError):
    """Raised when a workflow graph cannot be compiled.

    Compilation is all-or-nothing: whenever this error is raised no plan
    is returned.

    Attributes:
        workflow_id: Identifier of the workflow being compiled.
        cause: The underlying error, if the failure wraps another exception.
    """

    error_code_default = "COMPILATION_FAILED"

    def __init__(
        self,
        message: str,
        workflow_id: str | None = None,
        cause: Exception | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if workflow_id:
            details.setdefault("workflow_id", workflow_id)
        super().__init__(message, error_code=error_code, details=details)
        self.workflow_id = workflow_id
        self.cause = cause


class CycleDetectedError(CompilationError):
    """Raised when the dependency graph contains a cycle.

    Attributes:
        cycle_path: Node ids forming the cycle, first node repeated at the end.
    """

    def __init__(self, cycle_path: list[str], workflow_id: str | None = None) -> None:
        cycle_str = " -> ".join(cycle_path)
        super().__init__(
            message=f"Circular dependency detected in workflow: {cycle_str}",
            workflow_id=workflow_id,
            error_code="CYCLE_DETECTED",
            details={"cycle_path": list(cycle_path)},
        )
        self.cycle_path = cycle_path


class CompiledWorkflowMismatchError(FlowDropError):
    """Raised when the execution order and the node mappings disagree.

    This is a logic error in the compiler rather than a problem with the
    submitted graph.

    Attributes:
        missing_mappings: Node ids in the execution order without a mapping.
        orphan_mappings: Node ids with a mapping but absent from the order.
    """

    error_code_default = "COMPILED_WORKFLOW_MISMATCH"

    def __init__(self, missing_mappings: list[str], orphan_mappings: list[str]) -> None:
        super().__init__(
            "Compiled workflow is inconsistent: "
            f"missing mappings {missing_mappings}, orphan mappings {orphan_mappings}",
            details={
                "missing_mappings": missing_mappings,
                "orphan_mappings": orphan_mappings,
            },
        )
        self.missing_mappings = missing_mappings
        self.orphan_mappings = orphan_mappings


# ============================================================================
# Data Flow Exceptions
# ============================================================================


class DataFlowError(FlowDropError):
    """Raised when data cannot flow between two connected nodes.

    Attributes:
        node_id: Node whose inputs could not be assembled.
        port: Port involved in the mismatch, if known.
    """

    error_code_default = "DATA_FLOW_ERROR"

    def __init__(
        self,
        message: str,
        node_id: str | None = None,
        port: str | None = None,
    ) -> None:
        super().__init__(message, details={"node_id": node_id, "port": port})
        self.node_id = node_id
        self.port = port


# ============================================================================
# Orchestration Exceptions
# ============================================================================


class OrchestrationError(FlowDropError):
    """Raised when a pipeline cannot be driven forward.

    Attributes:
        pipeline_id: Pipeline being orchestrated, if known.
    """

    error_code_default = "ORCHESTRATION_ERROR"

    def __init__(
        self,
        message: str,
        pipeline_id: str | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code=error_code,
            details={"pipeline_id": pipeline_id} if pipeline_id else None,
        )
        self.pipeline_id = pipeline_id


class PipelineStateError(OrchestrationError):
    """Raised when a pipeline operation is not allowed in its current state."""

    def __init__(self, pipeline_id: str, status: str, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} pipeline {pipeline_id} in {status} state",
            pipeline_id=pipeline_id,
            error_code="INVALID_PIPELINE_STATE",
        )
        self.status = status
        self.operation = operation


# ============================================================================
# Node Execution Exceptions
# ============================================================================


class NodeExecutionError(FlowDropError):
    """Raised when a processor fails while executing a node.

    Attributes:
        node_id: Node that failed.
        job_id: Job that was executing the node, if any.
        original_error: The exception raised by the processor.
    """

    error_code_default = "NODE_EXECUTION_FAILED"

    def __init__(
        self,
        node_id: str,
        message: str,
        job_id: str | None = None,
        original_error: Exception | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(
            f"Node {node_id} execution failed: {message}",
            error_code=error_code,
            details={
                "node_id": node_id,
                "job_id": job_id,
                "original_error": type(original_error).__name__ if original_error else None,
            },
        )
        self.node_id = node_id
        self.job_id = job_id
        self.reason = message
        self.original_error = original_error


class NodeTimeoutError(NodeExecutionError):
    """Raised when a node exceeds its execution timeout.

    Attributes:
        timeout_seconds: Timeout that was exceeded.
    """

    def __init__(self, node_id: str, timeout_seconds: float, job_id: str | None = None) -> None:
        super().__init__(
            node_id,
            f"timeout after {timeout_seconds}s",
            job_id=job_id,
            error_code="NODE_TIMEOUT",
        )
        self.timeout_seconds = timeout_seconds


class ResourceLimitError(NodeExecutionError):
    """Raised when a node exceeds its memory ceiling.

    Attributes:
        limit_mb: Configured memory ceiling in megabytes.
        used_mb: Memory growth observed during the node execution.
    """

    def __init__(
        self,
        node_id: str,
        limit_mb: float,
        used_mb: float,
        job_id: str | None = None,
    ) -> None:
        super().__init__(
            node_id,
            f"memory limit exceeded ({used_mb:.1f}MB used, limit {limit_mb}MB)",
            job_id=job_id,
            error_code="RESOURCE_LIMIT_EXCEEDED",
        )
        self.limit_mb = limit_mb
        self.used_mb = used_mb


__all__ = [
    "CompilationError",
    "CompiledWorkflowMismatchError",
    "CycleDetectedError",
    "DataFlowError",
    "NodeExecutionError",
    "NodeTimeoutError",
    "OrchestrationError",
    "PipelineStateError",
    "ResourceLimitError",
]
