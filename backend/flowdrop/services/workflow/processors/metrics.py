"""Processor metrics collection.

The node runtime records one ``ProcessorMetrics`` entry per node
invocation; ``MetricsCollector`` aggregates them per pipeline and per
processor type.
"""

import json
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def payload_size(payload: Any) -> int:
    """Approximate size of a JSON-like payload in bytes."""
    try:
        return len(json.dumps(payload, default=str).encode("utf-8"))
    except (TypeError, ValueError):
        return 0


@dataclass
class ProcessorMetrics:
    """Metrics collected for a single node invocation.

    Attributes:
        processor_type: Registry key of the processor (e.g. "text_transform")
        node_id: ID of the node being processed
        execution_id: ID of the pipeline run
        job_id: ID of the job that executed the node
        validation_duration_ms: Time spent validating inputs and config
        process_duration_ms: Time spent in ``process``
        serialization_duration_ms: Time spent serializing the output
        total_duration_ms: Total invocation time
        success: Whether the invocation succeeded
        error_type: Exception class name if it failed
        input_size_bytes: Size of the input payload
        output_size_bytes: Size of the output payload
        memory_delta_mb: Resident memory growth during the invocation
        started_at: When the invocation started
        completed_at: When the invocation finished
    """

    processor_type: str
    node_id: str
    execution_id: str
    job_id: str | None = None

    # Timing
    validation_duration_ms: float = 0.0
    process_duration_ms: float = 0.0
    serialization_duration_ms: float = 0.0
    total_duration_ms: float = 0.0

    # Status
    success: bool = False
    error_type: str | None = None

    # Resource usage
    input_size_bytes: int = 0
    output_size_bytes: int = 0
    memory_delta_mb: float = 0.0

    # Timestamps
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None


class MetricsCollector:
    """Thread-safe metrics collector for processors.

    Workers of the asynchronous orchestrator may record concurrently, so
    every access to the underlying list goes through a lock.
    """

    def __init__(self) -> None:
        self._metrics: list[ProcessorMetrics] = []
        self._lock = threading.Lock()

    def record(self, metrics: ProcessorMetrics) -> None:
        """Record processor metrics."""
        with self._lock:
            self._metrics.append(metrics)

    def get_metrics(
        self,
        execution_id: str | None = None,
        processor_type: str | None = None,
    ) -> list[ProcessorMetrics]:
        """Get recorded metrics with optional filters.

        Args:
            execution_id: Filter by pipeline run
            processor_type: Filter by processor type

        Returns:
            List of metrics matching the filter criteria
        """
        with self._lock:
            result = self._metrics.copy()

        if execution_id:
            result = [m for m in result if m.execution_id == execution_id]
        if processor_type:
            result = [m for m in result if m.processor_type == processor_type]

        return result

    def get_summary(self, execution_id: str | None = None) -> dict[str, Any]:
        """Get aggregated statistics, for one run or for everything recorded.

        Args:
            execution_id: The run to summarize, None for all runs

        Returns:
            Dictionary with summary statistics or empty dict if no metrics
        """
        metrics = self.get_metrics(execution_id=execution_id)

        if not metrics:
            return {}

        total_duration = sum(m.total_duration_ms for m in metrics)
        success_count = sum(1 for m in metrics if m.success)
        failure_count = len(metrics) - success_count

        by_type: dict[str, list[ProcessorMetrics]] = {}
        for m in metrics:
            by_type.setdefault(m.processor_type, []).append(m)

        return {
            "execution_id": execution_id,
            "total_processors": len(metrics),
            "success_count": success_count,
            "failure_count": failure_count,
            "success_rate": success_count / len(metrics),
            "total_duration_ms": total_duration,
            "by_processor_type": {
                ptype: {
                    "count": len(pmetrics),
                    "avg_duration_ms": (
                        sum(m.total_duration_ms for m in pmetrics) / len(pmetrics)
                    ),
                    "success_rate": (
                        sum(1 for m in pmetrics if m.success) / len(pmetrics)
                    ),
                }
                for ptype, pmetrics in by_type.items()
            },
        }

    def clear(self, execution_id: str | None = None) -> None:
        """Clear recorded metrics.

        Args:
            execution_id: If provided, only clear metrics for this run.
                If None, clear all metrics.
        """
        with self._lock:
            if execution_id:
                self._metrics = [
                    m for m in self._metrics if m.execution_id != execution_id
                ]
            else:
                self._metrics.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)
