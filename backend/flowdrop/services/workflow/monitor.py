"""Execution monitoring.

Tracks, per pipeline run, wall-clock time, process memory, node execution
counts and error/warning counts, and scores each finished run. Monitoring
is observational only: nothing here gates execution.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import psutil

from flowdrop.core.config import settings

MB = 1024 * 1024


def process_memory_bytes() -> int:
    """Resident set size of the current process."""
    return psutil.Process(os.getpid()).memory_info().rss


@dataclass
class MonitoringSession:
    """Live counters of one monitored run."""

    execution_id: str
    start_time: float
    start_wall_time: float
    start_memory: int
    context: dict[str, Any] = field(default_factory=dict)
    node_executions: int = 0
    total_execution_time: float = 0.0
    errors: int = 0
    warnings: int = 0
    memory_samples: list[int] = field(default_factory=list)
    nodes: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def average_node_time(self) -> float:
        if not self.node_executions:
            return 0.0
        return self.total_execution_time / self.node_executions

    def metrics(self) -> dict[str, Any]:
        return {
            "node_executions": self.node_executions,
            "total_execution_time": self.total_execution_time,
            "average_node_time": self.average_node_time,
            "errors": self.errors,
            "warnings": self.warnings,
        }


class ExecutionMonitor:
    """Performance and resource tracker for pipeline runs.

    Active runs live in memory until ``stop_monitoring`` turns them into a
    final report kept in a report cache (see ``clear_old_metrics``).

    Args:
        memory_limit_mb: Memory budget used for the utilization deduction
            of the performance score. None disables the deduction.
        slow_execution_seconds: Runs longer than this lose points.
        memory_warning_percent: Utilization above this loses points.
        clock: Monotonic clock, injectable for tests.
        memory_sampler: Returns current process memory in bytes.
    """

    def __init__(
        self,
        memory_limit_mb: float | None = None,
        slow_execution_seconds: float | None = None,
        memory_warning_percent: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        memory_sampler: Callable[[], int] = process_memory_bytes,
        logger: logging.Logger | None = None,
    ) -> None:
        self.memory_limit_mb = (
            memory_limit_mb if memory_limit_mb is not None else settings.MONITOR_MEMORY_LIMIT_MB
        )
        self.slow_execution_seconds = (
            slow_execution_seconds
            if slow_execution_seconds is not None
            else settings.MONITOR_SLOW_EXECUTION_SECONDS
        )
        self.memory_warning_percent = (
            memory_warning_percent
            if memory_warning_percent is not None
            else settings.MONITOR_MEMORY_WARNING_PERCENT
        )
        self._clock = clock
        self._memory_sampler = memory_sampler
        self.logger = logger or logging.getLogger(__name__)
        self._sessions: dict[str, MonitoringSession] = {}
        self._reports: dict[str, dict[str, Any]] = {}

    def is_monitoring(self, execution_id: str) -> bool:
        return execution_id in self._sessions

    def start_monitoring(self, execution_id: str, context: dict[str, Any] | None = None) -> None:
        """Open a monitoring session for a run (restarts an existing one)."""
        self._sessions[execution_id] = MonitoringSession(
            execution_id=execution_id,
            start_time=self._clock(),
            start_wall_time=time.time(),
            start_memory=self._memory_sampler(),
            context=dict(context or {}),
        )
        self.logger.info(
            "Started monitoring execution %s",
            execution_id,
            extra={"context": {"execution_id": execution_id, **(context or {})}},
        )

    def stop_monitoring(self, execution_id: str) -> dict[str, Any]:
        """Close a session and return its final report.

        Returns:
            The final report, or an empty dict if the run was not monitored.
        """
        session = self._sessions.pop(execution_id, None)
        if session is None:
            self.logger.warning("Attempted to stop monitoring unknown execution %s", execution_id)
            return {}

        total_time = self._clock() - session.start_time
        end_memory = self._memory_sampler()
        report = {
            "execution_id": execution_id,
            "total_execution_time": total_time,
            "memory_usage": {
                "start": session.start_memory,
                "end": end_memory,
                "delta": end_memory - session.start_memory,
                "peak": max([end_memory, *session.memory_samples]),
            },
            "metrics": session.metrics(),
            "nodes": session.nodes,
            "performance_score": self.calculate_performance_score(
                errors=session.errors,
                warnings=session.warnings,
                total_time=total_time,
                memory_percent=self._memory_percent(end_memory),
            ),
            "context": session.context,
            "timestamp": time.time(),
        }
        self._reports[execution_id] = report

        self.logger.info(
            "Stopped monitoring execution %s",
            execution_id,
            extra={
                "context": {
                    "execution_id": execution_id,
                    "total_time": total_time,
                    "memory_delta": report["memory_usage"]["delta"],
                    "performance_score": report["performance_score"],
                }
            },
        )
        return report

    def record_node_execution(
        self,
        execution_id: str,
        node_id: str,
        execution_time: float,
        success: bool = True,
        memory_usage: int | None = None,
    ) -> None:
        """Count one node invocation of a monitored run."""
        session = self._sessions.get(execution_id)
        if session is None:
            self.logger.debug("Node execution for unmonitored execution %s", execution_id)
            return

        session.node_executions += 1
        session.total_execution_time += execution_time
        session.memory_samples.append(
            memory_usage if memory_usage is not None else self._memory_sampler()
        )

        node = session.nodes.setdefault(
            node_id, {"executions": 0, "total_time": 0.0, "failures": 0}
        )
        node["executions"] += 1
        node["total_time"] += execution_time
        if not success:
            node["failures"] += 1
        node["average_time"] = node["total_time"] / node["executions"]

    def record_error(
        self,
        execution_id: str,
        error: BaseException | str,
        context: dict[str, Any] | None = None,
    ) -> None:
        session = self._sessions.get(execution_id)
        if session is None:
            return
        session.errors += 1
        self.logger.error(
            "Recorded error for execution %s: %s",
            execution_id,
            error,
            extra={"context": {"execution_id": execution_id, **(context or {})}},
        )

    def record_warning(
        self,
        execution_id: str,
        warning: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        session = self._sessions.get(execution_id)
        if session is None:
            return
        session.warnings += 1
        self.logger.warning(
            "Recorded warning for execution %s: %s",
            execution_id,
            warning,
            extra={"context": {"execution_id": execution_id, **(context or {})}},
        )

    def get_monitoring_status(self, execution_id: str) -> dict[str, Any] | None:
        """Live status of an active run, None if it is not monitored."""
        session = self._sessions.get(execution_id)
        if session is None:
            return None
        current_memory = self._memory_sampler()
        return {
            "execution_id": execution_id,
            "elapsed_time": self._clock() - session.start_time,
            "current_memory": current_memory,
            "memory_delta": current_memory - session.start_memory,
            "metrics": session.metrics(),
            "nodes": session.nodes,
        }

    def get_performance_metrics(self) -> dict[str, Any]:
        """Aggregate counters over active and finished runs."""
        metrics: dict[str, Any] = {
            "active_executions": len(self._sessions),
            "completed_executions": len(self._reports),
            "total_execution_time": 0.0,
            "average_execution_time": 0.0,
            "average_performance_score": None,
            "total_node_executions": 0,
            "total_errors": 0,
            "total_warnings": 0,
            "memory_usage": {"current": self._memory_sampler()},
        }

        for session in self._sessions.values():
            metrics["total_node_executions"] += session.node_executions
            metrics["total_errors"] += session.errors
            metrics["total_warnings"] += session.warnings

        for report in self._reports.values():
            metrics["total_execution_time"] += report["total_execution_time"]
            metrics["total_node_executions"] += report["metrics"]["node_executions"]
            metrics["total_errors"] += report["metrics"]["errors"]
            metrics["total_warnings"] += report["metrics"]["warnings"]

        if self._reports:
            metrics["average_execution_time"] = metrics["total_execution_time"] / len(self._reports)
            metrics["average_performance_score"] = sum(
                r["performance_score"] for r in self._reports.values()
            ) / len(self._reports)

        return metrics

    def get_detailed_report(self, execution_id: str) -> dict[str, Any] | None:
        """Live status if the run is active, else its final report."""
        if execution_id in self._sessions:
            return self.get_monitoring_status(execution_id)
        return self._reports.get(execution_id)

    def clear_old_metrics(self, max_age: float = 86400) -> int:
        """Drop final reports older than ``max_age`` seconds.

        Returns:
            Number of reports removed.
        """
        cutoff = time.time() - max_age
        stale = [
            execution_id
            for execution_id, report in self._reports.items()
            if report["timestamp"] < cutoff
        ]
        for execution_id in stale:
            del self._reports[execution_id]
        if stale:
            self.logger.info("Cleared %d old monitoring reports", len(stale))
        return len(stale)

    def calculate_performance_score(
        self,
        errors: int,
        warnings: int,
        total_time: float,
        memory_percent: float | None = None,
    ) -> float:
        """Score a run between 0 and 100.

        Starts at 100; -10 per error, -2 per warning, up to -20 for time
        beyond the slow threshold (1 point per 10 s) and up to -15 for
        memory utilization above the warning percentage (1 point per 2 %).
        """
        score = 100.0
        score -= errors * 10
        score -= warnings * 2

        if total_time > self.slow_execution_seconds:
            score -= min(20.0, (total_time - self.slow_execution_seconds) / 10)

        if memory_percent is not None and memory_percent > self.memory_warning_percent:
            score -= min(15.0, (memory_percent - self.memory_warning_percent) / 2)

        return max(0.0, score)

    def _memory_percent(self, memory_bytes: int) -> float | None:
        if not self.memory_limit_mb:
            return None
        return memory_bytes / (self.memory_limit_mb * MB) * 100


__all__ = [
    "ExecutionMonitor",
    "MonitoringSession",
    "process_memory_bytes",
]
