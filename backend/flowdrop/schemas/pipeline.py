"""Pipeline status schemas.

Response models of the read-only status API: pipeline status with its
derived job counts, per-node job status and aggregate monitor metrics.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Required at runtime for Pydantic
from typing import Any
from uuid import UUID  # noqa: TC003 - Required at runtime for Pydantic

from pydantic import Field

from flowdrop.models.enums import (  # noqa: TC001 - Required at runtime for Pydantic
    ExecutionMode,
    JobStatus,
    PipelineStatus,
)
from flowdrop.schemas.base import BaseSchema


class JobCounts(BaseSchema):
    """Job-count summary derived from the job table."""

    total: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    running: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    cancelled: int = Field(default=0, ge=0)


class PipelineStatusResponse(BaseSchema):
    """Current status of a pipeline run."""

    id: UUID = Field(..., description="Pipeline identifier")
    workflow_id: str = Field(..., description="Compiled workflow identifier")
    label: str = ""
    status: PipelineStatus
    execution_mode: ExecutionMode
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float | None = None
    job_counts: JobCounts = Field(default_factory=JobCounts)
    progress: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Share of jobs in a terminal state",
    )


class NodeStatusResponse(BaseSchema):
    """Status of the job executing one node."""

    job_id: UUID = Field(..., validation_alias="id")
    node_id: str
    label: str = ""
    processor_type: str
    status: JobStatus
    priority: int = 0
    position: int = 0
    retry_count: int = 0
    max_retries: int = 0
    error_message: str | None = None
    depends_on: list[str] = Field(default_factory=list)
    output_data: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float | None = None


class PipelineNodesResponse(BaseSchema):
    """Per-node status of a pipeline run, in execution order."""

    pipeline_id: UUID
    status: PipelineStatus
    nodes: list[NodeStatusResponse] = Field(default_factory=list)


class MetricsResponse(BaseSchema):
    """Aggregate execution metrics from the monitor."""

    active_executions: int = 0
    completed_executions: int = 0
    total_execution_time: float = 0.0
    average_execution_time: float = 0.0
    average_performance_score: float | None = None
    total_node_executions: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    memory_usage: dict[str, int] = Field(default_factory=dict)
    processors: dict[str, Any] = Field(
        default_factory=dict,
        description="Processor metrics summary",
    )
