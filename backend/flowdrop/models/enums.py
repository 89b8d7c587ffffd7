"""Domain enum definitions for the FlowDrop engine.

This module defines the enum types used across the engine for type-safe
representation of pipeline and job states and pipeline options.
"""

from enum import Enum


class PipelineStatus(str, Enum):
    """Pipeline (workflow run) state.

    ``pending -> running -> {completed, failed, cancelled}``, with
    ``running <-> paused`` and ``failed/cancelled -> pending`` on reset.
    """

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class JobStatus(str, Enum):
    """Job state.

    ``pending -> running -> {completed, failed, cancelled}`` and
    ``failed -> pending`` on retry.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class ExecutionMode(str, Enum):
    """Which orchestrator drives a pipeline."""

    SYNCHRONOUS = "synchronous"
    ASYNCHRONOUS = "asynchronous"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class RetryStrategy(str, Enum):
    """How a pipeline reacts to an irrecoverable job failure.

    INDIVIDUAL keeps running independent branches; STOP_ON_FAILURE cancels
    every job that has not started yet.
    """

    INDIVIDUAL = "individual"
    STOP_ON_FAILURE = "stop_on_failure"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


class PriorityStrategy(str, Enum):
    """How job priorities are assigned at generation time."""

    CONFIG = "config"
    DEPENDENCY_ORDER = "dependency_order"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

TERMINAL_PIPELINE_STATUSES = (
    PipelineStatus.COMPLETED,
    PipelineStatus.FAILED,
    PipelineStatus.CANCELLED,
)
