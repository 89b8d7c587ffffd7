"""Pipeline and Job models.

A ``Pipeline`` is one run of a compiled workflow; a ``Job`` is one node of
that workflow scheduled within the run. Jobs reference the jobs they depend
on through ``depends_on``, an ordered list of job ids.

State transitions are performed through the helper methods on each model,
which raise ``ValueError`` on an illegal transition so that callers never
silently write an inconsistent state.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from flowdrop.models.base import (
    GUID,
    Base,
    JSONType,
    TimestampMixin,
    UUIDMixin,
    as_utc,
    utcnow,
)
from flowdrop.models.enums import (
    TERMINAL_JOB_STATUSES,
    TERMINAL_PIPELINE_STATUSES,
    ExecutionMode,
    JobStatus,
    PipelineStatus,
)

DEFAULT_MAX_RETRIES = 3


def _elapsed(started_at: datetime | None, completed_at: datetime | None) -> float | None:
    start, end = as_utc(started_at), as_utc(completed_at)
    if start is None or end is None:
        return None
    return (end - start).total_seconds()


class Pipeline(UUIDMixin, TimestampMixin, Base):
    """One execution of a compiled workflow.

    Job counts are never stored on the pipeline; they are derived from the
    job table on demand (see ``PipelineService.get_job_counts``).

    Attributes:
        id: UUID primary key (from UUIDMixin)
        workflow_id: Identifier of the workflow graph that was compiled
        label: Human readable name
        status: Current pipeline status
        execution_mode: Orchestrator driving the pipeline
        input_data: Initial data merged into every job's inputs
        output_data: Aggregated ``{node_id: output}`` of completed jobs
        error_message: Failure summary (nullable)
        options: Orchestration options (max_concurrent_jobs,
            retry_strategy, job_priority_strategy)
        started_at: When the pipeline first started running (nullable)
        completed_at: When the pipeline reached a terminal state (nullable)
    """

    __tablename__ = "pipelines"

    workflow_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        server_default="",
    )

    status: Mapped[PipelineStatus] = mapped_column(
        String(50),
        nullable=False,
        default=PipelineStatus.PENDING,
        server_default="pending",
        index=True,
    )

    execution_mode: Mapped[ExecutionMode] = mapped_column(
        String(50),
        nullable=False,
        default=ExecutionMode.SYNCHRONOUS,
        server_default="synchronous",
    )

    input_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    output_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    options: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_terminal(self) -> bool:
        """Check if the pipeline is completed, failed or cancelled."""
        return self.status in TERMINAL_PIPELINE_STATUSES

    @property
    def duration_seconds(self) -> float | None:
        """Calculate run duration in seconds, None while unfinished."""
        return _elapsed(self.started_at, self.completed_at)

    def get_option(self, name: str, default: Any = None) -> Any:
        """Read an orchestration option."""
        return (self.options or {}).get(name, default)

    def start(self) -> None:
        """Mark pipeline as running.

        Raises:
            ValueError: If pipeline is not in PENDING state.
        """
        if self.status != PipelineStatus.PENDING:
            raise ValueError(f"Cannot start pipeline in {self.status} state")
        self.status = PipelineStatus.RUNNING
        self.started_at = utcnow()
        self.completed_at = None
        self.error_message = None

    def pause(self) -> None:
        """Pause a running pipeline.

        Raises:
            ValueError: If pipeline is not in RUNNING state.
        """
        if self.status != PipelineStatus.RUNNING:
            raise ValueError(f"Cannot pause pipeline in {self.status} state")
        self.status = PipelineStatus.PAUSED

    def resume(self) -> None:
        """Resume a paused pipeline.

        Raises:
            ValueError: If pipeline is not in PAUSED state.
        """
        if self.status != PipelineStatus.PAUSED:
            raise ValueError(f"Cannot resume pipeline in {self.status} state")
        self.status = PipelineStatus.RUNNING

    def complete(self, output_data: dict[str, Any] | None = None) -> None:
        """Mark pipeline as completed.

        Args:
            output_data: Aggregated outputs of the completed jobs.

        Raises:
            ValueError: If pipeline is not in RUNNING state.
        """
        if self.status != PipelineStatus.RUNNING:
            raise ValueError(f"Cannot complete pipeline in {self.status} state")
        self.status = PipelineStatus.COMPLETED
        self.completed_at = utcnow()
        if output_data is not None:
            self.output_data = output_data

    def fail(self, error_message: str, output_data: dict[str, Any] | None = None) -> None:
        """Mark pipeline as failed, keeping the partial outputs.

        Args:
            error_message: Description of what caused the failure.
            output_data: Outputs of the jobs that did complete.

        Raises:
            ValueError: If pipeline is not RUNNING or PAUSED.
        """
        if self.status not in (PipelineStatus.RUNNING, PipelineStatus.PAUSED):
            raise ValueError(f"Cannot fail pipeline in {self.status} state")
        self.status = PipelineStatus.FAILED
        self.completed_at = utcnow()
        self.error_message = error_message
        if output_data is not None:
            self.output_data = output_data

    def cancel(self) -> None:
        """Cancel the pipeline.

        Raises:
            ValueError: If pipeline is already in a terminal state.
        """
        if self.is_terminal:
            raise ValueError(f"Cannot cancel pipeline in {self.status} state")
        self.status = PipelineStatus.CANCELLED
        self.completed_at = utcnow()

    def reset(self) -> None:
        """Return a failed or cancelled pipeline to PENDING for a replay.

        Raises:
            ValueError: If pipeline is not FAILED or CANCELLED.
        """
        if self.status not in (PipelineStatus.FAILED, PipelineStatus.CANCELLED):
            raise ValueError(f"Cannot reset pipeline in {self.status} state")
        self.status = PipelineStatus.PENDING
        self.started_at = None
        self.completed_at = None
        self.error_message = None
        self.output_data = None

    def __repr__(self) -> str:
        """Return string representation of the pipeline."""
        return (
            f"<Pipeline(id={self.id}, "
            f"workflow_id={self.workflow_id}, "
            f"status={self.status})>"
        )


class Job(UUIDMixin, TimestampMixin, Base):
    """One scheduled unit of work: a single node within a single pipeline.

    Attributes:
        id: UUID primary key (from UUIDMixin)
        pipeline_id: Owning pipeline (CASCADE on delete)
        node_id: Graph node executed by this job
        label: Node label at generation time
        processor_type: Processor registry key
        config: Merged node configuration passed to the processor
        status: Current job status
        priority: Lower value runs first among ready jobs
        position: Index of the node in the execution order
        input_data: Inputs the processor was invoked with
        output_data: Processor output
        error_message: Last failure message (nullable)
        depends_on: Ordered list of job ids (as strings) that must complete first
        metadata_: Incoming/outgoing port mappings for data flow and gating
        retry_count: Number of retries performed so far
        max_retries: Retry ceiling
        queued_at: Set while a queue message for this job is outstanding
        started_at: When the current attempt started (nullable)
        completed_at: When the job reached a terminal state (nullable)
    """

    __tablename__ = "jobs"

    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("pipelines.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    node_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    label: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        server_default="",
    )

    processor_type: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    config: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    status: Mapped[JobStatus] = mapped_column(
        String(50),
        nullable=False,
        default=JobStatus.PENDING,
        server_default="pending",
        index=True,
    )

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    input_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    output_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    depends_on: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )

    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    max_retries: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_RETRIES,
        server_default=str(DEFAULT_MAX_RETRIES),
    )

    queued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_terminal(self) -> bool:
        """Check if the job is completed, failed or cancelled."""
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def can_retry(self) -> bool:
        """True iff ``retry_count < max_retries``."""
        return self.retry_count < self.max_retries

    @property
    def is_enqueued(self) -> bool:
        """Check if a queue message for this job is outstanding."""
        return self.queued_at is not None

    @property
    def incoming_edges(self) -> list[dict[str, Any]]:
        """Port mappings of the edges entering this job's node."""
        return list((self.metadata_ or {}).get("incoming_edges", []))

    @property
    def duration_seconds(self) -> float | None:
        """Duration of the last attempt in seconds, None while unfinished."""
        return _elapsed(self.started_at, self.completed_at)

    def is_ready(self, completed_job_ids: Iterable[str]) -> bool:
        """Check readiness: every job in ``depends_on`` has completed.

        A job with no dependencies is always ready.

        Args:
            completed_job_ids: Ids (as strings) of the completed jobs of the
                same pipeline.
        """
        completed = set(completed_job_ids)
        return all(dep in completed for dep in self.depends_on)

    def mark_enqueued(self) -> None:
        """Record that a queue message for this job has been published."""
        self.queued_at = utcnow()

    def start(self) -> None:
        """Mark job as running.

        Raises:
            ValueError: If job is not in PENDING state.
        """
        if self.status != JobStatus.PENDING:
            raise ValueError(f"Cannot start job in {self.status} state")
        self.status = JobStatus.RUNNING
        self.started_at = utcnow()
        self.completed_at = None

    def complete(self, output_data: dict[str, Any] | None = None) -> None:
        """Mark job as completed and store its output.

        Raises:
            ValueError: If job is not in RUNNING state.
        """
        if self.status != JobStatus.RUNNING:
            raise ValueError(f"Cannot complete job in {self.status} state")
        self.status = JobStatus.COMPLETED
        self.completed_at = utcnow()
        self.queued_at = None
        self.error_message = None
        self.output_data = dict(output_data or {})

    def fail(self, error_message: str) -> None:
        """Mark job as failed.

        Raises:
            ValueError: If job is not in RUNNING state.
        """
        if self.status != JobStatus.RUNNING:
            raise ValueError(f"Cannot fail job in {self.status} state")
        self.status = JobStatus.FAILED
        self.completed_at = utcnow()
        self.queued_at = None
        self.error_message = error_message

    def cancel(self, reason: str | None = None) -> None:
        """Cancel a job that has not reached a terminal state.

        Raises:
            ValueError: If job is already terminal.
        """
        if self.is_terminal:
            raise ValueError(f"Cannot cancel job in {self.status} state")
        self.status = JobStatus.CANCELLED
        self.completed_at = utcnow()
        self.queued_at = None
        if reason:
            self.error_message = reason

    def retry(self) -> None:
        """Return a failed job to PENDING for another attempt.

        Increments ``retry_count``.

        Raises:
            ValueError: If job is not FAILED or has no retries left.
        """
        if self.status != JobStatus.FAILED:
            raise ValueError(f"Cannot retry job in {self.status} state")
        if not self.can_retry:
            raise ValueError(
                f"Job {self.id} exhausted its retries ({self.retry_count}/{self.max_retries})"
            )
        self.retry_count += 1
        self.status = JobStatus.PENDING
        self.started_at = None
        self.completed_at = None
        self.queued_at = None

    def reset(self) -> None:
        """Reset the job to its freshly generated state for a pipeline replay."""
        self.status = JobStatus.PENDING
        self.retry_count = 0
        self.output_data = {}
        self.input_data = {}
        self.error_message = None
        self.started_at = None
        self.completed_at = None
        self.queued_at = None

    def __repr__(self) -> str:
        """Return string representation of the job."""
        return (
            f"<Job(id={self.id}, "
            f"node_id={self.node_id}, "
            f"status={self.status})>"
        )
