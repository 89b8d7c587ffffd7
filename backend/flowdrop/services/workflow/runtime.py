"""Node runtime.

Executes a single node: resolves its processor from the registry, checks
the inputs, invokes the processor under a timeout and a memory ceiling, and
wraps every failure in a ``NodeExecutionError`` carrying job and node
context. The runtime holds no node-specific logic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from flowdrop.core.config import settings
from flowdrop.services.workflow.exceptions import (
    NodeExecutionError,
    NodeTimeoutError,
    ResourceLimitError,
)
from flowdrop.services.workflow.monitor import MB, process_memory_bytes
from flowdrop.services.workflow.processors.errors import ProcessorError
from flowdrop.services.workflow.processors.metrics import MetricsCollector, ProcessorMetrics
from flowdrop.services.workflow.processors.registry import ProcessorRegistry, get_registry

if TYPE_CHECKING:
    from flowdrop.services.workflow.monitor import ExecutionMonitor


@dataclass(frozen=True)
class NodeExecutionContext:
    """Where a node invocation happens.

    Attributes:
        pipeline_id: Pipeline run the job belongs to.
        job_id: Job executing the node.
        node_id: Node being executed.
        retry_count: Retries already performed for the job.
        max_retries: Retry ceiling of the job.
        extra: Additional context passed through to logs.
    """

    pipeline_id: str
    job_id: str
    node_id: str
    retry_count: int = 0
    max_retries: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline_id": self.pipeline_id,
            "job_id": self.job_id,
            "node_id": self.node_id,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            **self.extra,
        }


@dataclass
class NodeResult:
    """Successful outcome of a node invocation."""

    job_id: str
    node_id: str
    status: str
    output: dict[str, Any]
    execution_time: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "node_id": self.node_id,
            "status": self.status,
            "output": self.output,
            "execution_time": self.execution_time,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class NodeRuntime:
    """Uniform invocation shim over the processor registry.

    Args:
        registry: Processor registry (defaults to the global one).
        metrics_collector: Receives one ``ProcessorMetrics`` per invocation.
        monitor: Optional execution monitor fed with node timings and errors.
        timeout_seconds: Default execution timeout; a node's ``timeout``
            config key overrides it.
        memory_limit_mb: Default memory ceiling; a node's ``memory_limit_mb``
            config key overrides it. None or 0 disables the check.
        memory_sampler: Returns current process memory in bytes.
    """

    def __init__(
        self,
        registry: ProcessorRegistry | None = None,
        metrics_collector: MetricsCollector | None = None,
        monitor: ExecutionMonitor | None = None,
        timeout_seconds: float | None = None,
        memory_limit_mb: float | None = None,
        memory_sampler: Callable[[], int] = process_memory_bytes,
        logger: logging.Logger | None = None,
    ) -> None:
        self.registry = registry if registry is not None else get_registry()
        self.metrics_collector = (
            metrics_collector if metrics_collector is not None else MetricsCollector()
        )
        self.monitor = monitor
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.JOB_TIMEOUT_SECONDS
        )
        self.memory_limit_mb = (
            memory_limit_mb if memory_limit_mb is not None else settings.JOB_MEMORY_LIMIT_MB
        )
        self._memory_sampler = memory_sampler
        self.logger = logger or logging.getLogger(__name__)

    async def execute_node(
        self,
        job_id: str,
        node_id: str,
        processor_type: str,
        inputs: dict[str, Any],
        config: dict[str, Any] | None = None,
        context: NodeExecutionContext | None = None,
    ) -> NodeResult:
        """Execute one node.

        Args:
            job_id: Job executing the node.
            node_id: Node to execute.
            processor_type: Registry key of the processor.
            inputs: Assembled node inputs.
            config: Node configuration.
            context: Invocation context for metrics and logs.

        Returns:
            NodeResult with the processor output and timing metadata.

        Raises:
            NodeTimeoutError: If the processor exceeds its timeout.
            ResourceLimitError: If memory growth exceeds the ceiling.
            NodeExecutionError: On any other failure.
        """
        config = dict(config or {})
        execution_id = context.pipeline_id if context else job_id
        timeout = self._float_option(config, "timeout", self.timeout_seconds)
        memory_limit = self._float_option(config, "memory_limit_mb", self.memory_limit_mb)

        metrics = ProcessorMetrics(
            processor_type=processor_type,
            node_id=node_id,
            execution_id=execution_id,
            job_id=job_id,
        )
        log_context = {
            "job_id": job_id,
            "node_id": node_id,
            "processor_type": processor_type,
            **(context.to_dict() if context else {}),
        }

        start = time.perf_counter()
        start_memory = self._memory_sampler()
        try:
            try:
                processor = self.registry.create(processor_type)
            except ProcessorError as e:
                raise NodeExecutionError(
                    node_id, str(e), job_id=job_id, original_error=e
                ) from e

            if not processor.validate_inputs(inputs):
                raise NodeExecutionError(
                    node_id,
                    f"Invalid inputs for processor {processor_type}",
                    job_id=job_id,
                    error_code="INVALID_INPUTS",
                )

            try:
                output = await asyncio.wait_for(
                    processor.execute(inputs, config, metrics),
                    timeout=timeout or None,
                )
            except TimeoutError as e:
                raise NodeTimeoutError(node_id, timeout, job_id=job_id) from e
            except NodeExecutionError:
                raise
            except Exception as e:
                raise NodeExecutionError(
                    node_id, str(e) or type(e).__name__, job_id=job_id, original_error=e
                ) from e

            memory_delta_mb = (self._memory_sampler() - start_memory) / MB
            metrics.memory_delta_mb = memory_delta_mb
            if memory_limit and memory_delta_mb > memory_limit:
                raise ResourceLimitError(node_id, memory_limit, memory_delta_mb, job_id=job_id)

        except NodeExecutionError as e:
            execution_time = time.perf_counter() - start
            self._finish_metrics(metrics, execution_time, success=False, error=e)
            if self.monitor is not None:
                self.monitor.record_node_execution(
                    execution_id, node_id, execution_time, success=False
                )
                self.monitor.record_error(execution_id, e, log_context)
            self.logger.warning(
                "Node %s failed: %s",
                node_id,
                e.message,
                extra={"context": {**log_context, "error_code": e.error_code}},
            )
            raise

        execution_time = time.perf_counter() - start
        self._finish_metrics(metrics, execution_time, success=True)
        if self.monitor is not None:
            self.monitor.record_node_execution(execution_id, node_id, execution_time)

        self.logger.info(
            "Node %s completed in %.3fs",
            node_id,
            execution_time,
            extra={"context": log_context},
        )
        return NodeResult(
            job_id=job_id,
            node_id=node_id,
            status="completed",
            output=output,
            execution_time=execution_time,
            metadata={
                "processor_type": processor_type,
                "memory_delta_mb": metrics.memory_delta_mb,
                "retry_count": context.retry_count if context else 0,
            },
        )

    def _finish_metrics(
        self,
        metrics: ProcessorMetrics,
        execution_time: float,
        success: bool,
        error: NodeExecutionError | None = None,
    ) -> None:
        metrics.completed_at = datetime.now(UTC)
        metrics.total_duration_ms = execution_time * 1000
        metrics.success = success
        if error is not None:
            original = error.original_error
            metrics.error_type = type(original or error).__name__
        self.metrics_collector.record(metrics)

    @staticmethod
    def _float_option(config: dict[str, Any], key: str, default: float | None) -> float | None:
        value = config.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default


__all__ = [
    "NodeExecutionContext",
    "NodeResult",
    "NodeRuntime",
]
