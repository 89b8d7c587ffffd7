"""Shared orchestration logic.

Both orchestrators drive the jobs of a pipeline through the same state
machine; they only differ in how ready jobs are dispatched (inline loop or
work queue). Everything that decides *what* happens to a job lives here:
readiness with gateway gating, completion fan-out, failure classification
into a ``RetryDecision``, cancellation of the descendants of a failed job,
pipeline finalization and the pause/resume/cancel/reset controls.

Every database operation runs under ``self._lock`` so that concurrent
worker callbacks sharing the orchestrator never race on the session or on
a job. Methods prefixed with an underscore expect the lock to be held.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from flowdrop.models.base import as_utc, utcnow
from flowdrop.models.enums import (
    ExecutionMode,
    JobStatus,
    PipelineStatus,
    RetryStrategy,
)
from flowdrop.services.pipeline_service import JobService, PipelineService, as_uuid
from flowdrop.services.workflow.algorithms import GraphAlgorithms
from flowdrop.services.workflow.compiler import PortMapping, WorkflowCompiler
from flowdrop.services.workflow.dataflow import DataFlowManager
from flowdrop.services.workflow.error_handler import ErrorHandler
from flowdrop.services.workflow.exceptions import (
    DataFlowError,
    NodeExecutionError,
    OrchestrationError,
    PipelineStateError,
)
from flowdrop.services.workflow.graph import Graph
from flowdrop.services.workflow.job_generator import JobGenerator
from flowdrop.services.workflow.monitor import ExecutionMonitor
from flowdrop.services.workflow.retry import FailureKind, RetryDecision, classify_failure
from flowdrop.services.workflow.runtime import NodeExecutionContext, NodeRuntime

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from flowdrop.models.pipeline import Job, Pipeline
    from flowdrop.services.workflow.compiler import CompiledWorkflow

BRANCH_NOT_TAKEN = "branch not taken"


@dataclass
class ExecutionResponse:
    """Snapshot of a pipeline returned by the orchestrators.

    Attributes:
        pipeline_id: Pipeline id
        status: Pipeline status at the time of the snapshot
        success: True iff the pipeline completed
        outputs: ``{node_id: output}`` of every completed job
        job_counts: Derived job-count summary
        execution_time: Seconds between start and terminal state (so far)
        error_message: Pipeline failure summary
        warnings: Failed and cancelled jobs, one line each
    """

    pipeline_id: str
    status: PipelineStatus
    success: bool
    outputs: dict[str, Any] = field(default_factory=dict)
    job_counts: dict[str, int] = field(default_factory=dict)
    execution_time: float = 0.0
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline_id": self.pipeline_id,
            "status": str(self.status),
            "success": self.success,
            "outputs": self.outputs,
            "job_counts": self.job_counts,
            "execution_time": self.execution_time,
            "error_message": self.error_message,
            "warnings": self.warnings,
        }


class BaseOrchestrator(ABC):
    """Contract and shared behavior of the orchestrators.

    Args:
        session: Database session owned by the orchestrator.
        compiler: Workflow compiler used by ``orchestrate``.
        job_generator: Creates the jobs of a new pipeline.
        runtime: Executes single nodes. Defaults to a runtime reporting to
            ``monitor``.
        dataflow: Builds node inputs from upstream outputs.
        monitor: Execution monitor, one session per pipeline.
        error_handler: Categorizes job failures.
        logger: Logger, defaults to the module logger.
    """

    execution_mode: ClassVar[ExecutionMode]

    def __init__(
        self,
        session: AsyncSession,
        compiler: WorkflowCompiler | None = None,
        job_generator: JobGenerator | None = None,
        runtime: NodeRuntime | None = None,
        dataflow: DataFlowManager | None = None,
        monitor: ExecutionMonitor | None = None,
        error_handler: ErrorHandler | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.session = session
        self.logger = logger or logging.getLogger(__name__)
        self.compiler = compiler if compiler is not None else WorkflowCompiler()
        self.job_generator = job_generator if job_generator is not None else JobGenerator()
        self.monitor = monitor if monitor is not None else ExecutionMonitor()
        self.runtime = runtime if runtime is not None else NodeRuntime(monitor=self.monitor)
        self.dataflow = dataflow if dataflow is not None else DataFlowManager()
        self.error_handler = error_handler if error_handler is not None else ErrorHandler()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def start_pipeline(self, pipeline: Pipeline) -> bool:
        """Move a pipeline to running and dispatch its ready jobs.

        Returns:
            True if the pipeline is running afterwards.
        """

    @abstractmethod
    async def execute_pipeline(self, pipeline: Pipeline) -> ExecutionResponse:
        """Run (or dispatch) a pipeline and report its state."""

    async def on_jobs_ready(self, jobs: Sequence[Job]) -> None:
        """Hook called, with the lock held, for jobs that became ready."""
        return None

    async def on_pipeline_finished(self, pipeline: Pipeline) -> None:
        """Hook called, with the lock held, once a pipeline is terminal."""
        return None

    # ------------------------------------------------------------------
    # Pipeline creation
    # ------------------------------------------------------------------

    async def create_pipeline(
        self,
        compiled: CompiledWorkflow,
        input_data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        label: str = "",
    ) -> Pipeline:
        """Create a pending pipeline with its jobs.

        Nothing is persisted when job generation fails or is refused.

        Raises:
            OrchestrationError: If job generation failed or was refused.
        """
        async with self._lock:
            pipeline = await PipelineService.create(
                self.session,
                workflow_id=compiled.workflow_id,
                label=label or str(compiled.metadata.get("label") or compiled.workflow_id),
                input_data=dict(input_data or {}),
                options=dict(options or {}),
                execution_mode=self.execution_mode,
            )
            pipeline_id = str(pipeline.id)
            try:
                result = await self.job_generator.generate_jobs(self.session, pipeline, compiled)
            except Exception as e:
                await self.session.rollback()
                raise OrchestrationError(
                    f"Job generation failed for workflow {compiled.workflow_id}: {e}",
                    pipeline_id=pipeline_id,
                ) from e
            if result.refused:
                await self.session.rollback()
                raise OrchestrationError(
                    "; ".join(result.warnings), pipeline_id=pipeline_id
                )
            await self.session.commit()

        self.logger.info(
            "Created pipeline %s with %d jobs",
            pipeline.id,
            result.created,
            extra={
                "context": {
                    "pipeline_id": str(pipeline.id),
                    "workflow_id": compiled.workflow_id,
                    "execution_mode": str(self.execution_mode),
                }
            },
        )
        return pipeline

    async def orchestrate(
        self,
        graph_data: Mapping[str, Any],
        input_data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> ExecutionResponse:
        """Compile a workflow graph, create its pipeline and execute it.

        Raises:
            CompilationError: If the graph does not compile.
        """
        compiled = self.compiler.compile(graph_data)
        pipeline = await self.create_pipeline(compiled, input_data, options)
        return await self.execute_pipeline(pipeline)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    async def get_job(self, job_id: Any) -> Job | None:
        async with self._lock:
            return await JobService.get(self.session, job_id)

    async def run_job(self, job: Job) -> RetryDecision:
        """Execute one pending job and record its outcome.

        A job that is no longer pending, or whose pipeline is not running,
        is left untouched.

        Returns:
            The decision for the job's queue message.
        """
        async with self._lock:
            pipeline = await PipelineService.get(self.session, job.pipeline_id)
            if pipeline is None or job.status != JobStatus.PENDING:
                return RetryDecision.CONTINUE
            if pipeline.status != PipelineStatus.RUNNING:
                # Consumed without running; resume dispatches the job again
                job.queued_at = None
                await self.session.commit()
                return RetryDecision.CONTINUE

            jobs = await JobService.list_by_pipeline(self.session, pipeline.id)
            upstream = {j.node_id: j.output_data for j in jobs if j.status == JobStatus.COMPLETED}
            job.start()
            try:
                inputs = self.dataflow.build_inputs(
                    pipeline.input_data,
                    job.incoming_edges,
                    upstream,
                    skip_missing=bool(self.trigger_mappings(job.incoming_edges)),
                )
            except DataFlowError as e:
                input_error: DataFlowError | None = e
                inputs = {}
            else:
                input_error = None
                job.input_data = inputs
            await self.session.commit()
            context = NodeExecutionContext(
                pipeline_id=str(pipeline.id),
                job_id=str(job.id),
                node_id=job.node_id,
                retry_count=job.retry_count,
                max_retries=job.max_retries,
            )
            slot = self._execution_slot(pipeline)

        if input_error is not None:
            return await self.handle_job_failure(job, input_error)

        try:
            async with slot:
                result = await self.runtime.execute_node(
                    str(job.id),
                    job.node_id,
                    job.processor_type,
                    inputs,
                    job.config,
                    context,
                )
        except NodeExecutionError as e:
            return await self.handle_job_failure(job, e)

        await self.handle_job_completion(job, result.output)
        return RetryDecision.CONTINUE

    def _execution_slot(self, pipeline: Pipeline) -> contextlib.AbstractAsyncContextManager[Any]:
        return contextlib.nullcontext()

    async def handle_job_completion(self, job: Job, output: Mapping[str, Any]) -> list[Job]:
        """Record a job's output and fan out to the jobs it unblocks.

        Completion of a job of a cancelled or paused pipeline is recorded
        without fan-out.

        Returns:
            The jobs that became ready.
        """
        async with self._lock:
            if job.status != JobStatus.RUNNING:
                self.logger.warning(
                    "Ignoring completion of job %s in %s state",
                    job.id,
                    job.status,
                    extra={"context": {"job_id": str(job.id), "node_id": job.node_id}},
                )
                return []

            job.complete(dict(output))
            pipeline = await PipelineService.get_or_raise(self.session, job.pipeline_id)
            self.logger.info(
                "Job %s (%s) completed",
                job.id,
                job.node_id,
                extra={"context": {"pipeline_id": str(pipeline.id), "job_id": str(job.id)}},
            )

            ready: list[Job] = []
            if pipeline.status == PipelineStatus.RUNNING:
                ready = await self._collect_ready_jobs(pipeline)
                await self.on_jobs_ready(ready)
                await self._finalize_if_done(pipeline)
            await self.session.commit()
            return ready

    async def handle_job_failure(
        self,
        job: Job,
        error: BaseException | str,
    ) -> RetryDecision:
        """Classify a job failure and decide what happens next.

        - permanent failure: the job fails, its descendants are cancelled
          and the message is suspended
        - temporary or unknown failure with retries left: the job returns
          to pending and the message is requeued
        - retries exhausted: the job fails, its descendants are cancelled
          and the message is acknowledged

        Returns:
            The decision for the job's queue message.
        """
        message = str(error)
        async with self._lock:
            if job.status == JobStatus.PENDING:
                job.start()
            if job.status != JobStatus.RUNNING:
                return RetryDecision.CONTINUE

            job.fail(message)
            pipeline = await PipelineService.get_or_raise(self.session, job.pipeline_id)
            exception = error if isinstance(error, BaseException) else OrchestrationError(
                message, pipeline_id=str(pipeline.id)
            )
            kind = classify_failure(error)
            report = self.error_handler.handle_error(
                exception,
                {
                    "pipeline_id": str(pipeline.id),
                    "job_id": str(job.id),
                    "node_id": job.node_id,
                    "retry_count": job.retry_count,
                    "failure_kind": str(kind),
                },
            )
            job.metadata_ = {
                **(job.metadata_ or {}),
                "last_error": {
                    "category": report.category,
                    "severity": str(report.severity),
                    "failure_kind": str(kind),
                    "recovery_action": report.recovery.action,
                },
            }

            if pipeline.is_terminal:
                decision = RetryDecision.CONTINUE
            elif kind is not FailureKind.PERMANENT and job.can_retry:
                job.retry()
                decision = RetryDecision.REQUEUE
                await self.on_job_requeued(job)
            else:
                decision = (
                    RetryDecision.SUSPEND if kind is FailureKind.PERMANENT else RetryDecision.CONTINUE
                )
                await self._fail_permanently(pipeline, job)
                await self._finalize_if_done(pipeline)

            await self.session.commit()

        self.logger.info(
            "Job %s (%s) failed: %s -> %s",
            job.id,
            job.node_id,
            kind,
            decision,
            extra={
                "context": {
                    "job_id": str(job.id),
                    "node_id": job.node_id,
                    "retry_count": job.retry_count,
                    "max_retries": job.max_retries,
                }
            },
        )
        return decision

    async def on_job_requeued(self, job: Job) -> None:
        """Hook called, with the lock held, for a job returned to pending."""
        return None

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    async def get_ready_jobs(self, pipeline: Pipeline) -> list[Job]:
        """Pending jobs that can run now.

        A job without trigger edges waits for all its dependencies; a job
        with trigger edges waits for any one satisfied trigger. Jobs on a
        gateway branch that was not taken are cancelled on the way.
        """
        async with self._lock:
            ready = await self._collect_ready_jobs(pipeline)
            await self.session.commit()
            return ready

    async def _collect_ready_jobs(self, pipeline: Pipeline) -> list[Job]:
        jobs = list(await JobService.list_by_pipeline(self.session, pipeline.id))
        completed = {str(j.id) for j in jobs if j.status == JobStatus.COMPLETED}
        by_node = {j.node_id: j for j in jobs}

        ready: list[Job] = []
        skipped: list[Job] = []
        for job in jobs:
            if job.status != JobStatus.PENDING:
                continue
            triggers = self.trigger_mappings(job.incoming_edges)
            if not triggers:
                if job.is_ready(completed):
                    ready.append(job)
                continue
            gate = self._trigger_gate(job, triggers, jobs, by_node)
            if gate is True:
                ready.append(job)
            elif gate is False:
                skipped.append(job)

        for job in skipped:
            if job.status == JobStatus.PENDING:
                self._cancel_unreachable(jobs, job, BRANCH_NOT_TAKEN)
        return sorted(ready, key=lambda j: (j.priority, j.position))

    def _trigger_gate(
        self,
        job: Job,
        triggers: Sequence[PortMapping],
        jobs: Sequence[Job],
        by_node: Mapping[str, Job],
    ) -> bool | None:
        """Readiness of a job gated by trigger edges.

        Only the triggers decide: the job is ready once any trigger source
        completed with the trigger's branch active, and can never run once
        every trigger source is terminal without satisfying it. A failed
        dependency keeps the job blocked.

        Returns:
            True if ready, False if it can never run, None while waiting.
        """
        by_id = {str(j.id): j for j in jobs}
        if any(
            by_id[dep].status == JobStatus.FAILED for dep in job.depends_on if dep in by_id
        ):
            return None

        settled = True
        for mapping in triggers:
            source = by_node.get(mapping.source_node)
            if source is None:
                continue
            if source.status == JobStatus.COMPLETED:
                if self.is_branch_taken([mapping], {source.node_id: source.output_data}):
                    return True
            elif not source.is_terminal:
                settled = False
        return False if settled else None

    @staticmethod
    def trigger_mappings(incoming: Iterable[PortMapping | Mapping[str, Any]]) -> list[PortMapping]:
        """The trigger edges among a job's incoming port mappings."""
        mappings = [m if isinstance(m, PortMapping) else PortMapping.from_dict(m) for m in incoming]
        return [m for m in mappings if m.is_trigger]

    @classmethod
    def is_branch_taken(
        cls,
        incoming: Iterable[PortMapping | Mapping[str, Any]],
        upstream_outputs: Mapping[str, Mapping[str, Any]],
    ) -> bool:
        """Check the trigger edges of a job.

        A job without trigger edges is always taken. Otherwise at least one
        trigger must be satisfied: its branch name is empty, its source
        emitted no ``active_branches``, or the source's comma separated
        ``active_branches`` contains the branch name (case-insensitive).
        """
        triggers = cls.trigger_mappings(incoming)
        if not triggers:
            return True

        for mapping in triggers:
            if not mapping.branch_name:
                return True
            output = upstream_outputs.get(mapping.source_node, {})
            active = output.get("active_branches")
            if active is None:
                return True
            branches = {b.strip().lower() for b in str(active).split(",") if b.strip()}
            if mapping.branch_name.lower() in branches:
                return True
        return False

    # ------------------------------------------------------------------
    # Failure propagation and finalization
    # ------------------------------------------------------------------

    @staticmethod
    def _dependency_graph(jobs: Sequence[Job]) -> Graph[str]:
        graph: Graph[str] = Graph()
        by_id = {str(j.id): j for j in jobs}
        for job in jobs:
            graph.add_node(str(job.id))
            for dependency in job.depends_on or []:
                if dependency in by_id:
                    graph.add_edge(dependency, str(job.id))
        return graph

    def _cancel_with_descendants(self, jobs: Sequence[Job], root: Job, reason: str) -> list[Job]:
        by_id = {str(j.id): j for j in jobs}
        graph = self._dependency_graph(jobs)

        targets = [root] if not root.is_terminal else []
        targets += [
            by_id[job_id] for job_id in GraphAlgorithms.get_descendants(graph, [str(root.id)])
        ]
        cancelled = []
        for job in targets:
            if job.status == JobStatus.PENDING:
                job.cancel(reason if job is root else f"{reason} (upstream {root.node_id})")
                cancelled.append(job)
        self._log_cancelled(root, cancelled, reason)
        return cancelled

    def _cancel_unreachable(self, jobs: Sequence[Job], root: Job, reason: str) -> list[Job]:
        """Cancel a job on a branch not taken and the dependents it strands.

        A dependent gated by trigger edges is spared while another of its
        triggers can still be satisfied.
        """
        by_node = {j.node_id: j for j in jobs}
        dependents: dict[str, list[Job]] = {}
        for job in jobs:
            for dependency in job.depends_on or []:
                dependents.setdefault(dependency, []).append(job)

        root.cancel(reason)
        cancelled = [root]
        frontier = [root]
        while frontier:
            current = frontier.pop(0)
            for job in dependents.get(str(current.id), []):
                if job.status != JobStatus.PENDING:
                    continue
                triggers = self.trigger_mappings(job.incoming_edges)
                if triggers and self._trigger_gate(job, triggers, jobs, by_node) is not False:
                    continue
                job.cancel(f"{reason} (upstream {root.node_id})")
                cancelled.append(job)
                frontier.append(job)
        self._log_cancelled(root, cancelled, reason)
        return cancelled

    def _log_cancelled(self, root: Job, cancelled: Sequence[Job], reason: str) -> None:
        if not cancelled:
            return
        self.logger.info(
            "Cancelled %d jobs: %s",
            len(cancelled),
            reason,
            extra={
                "context": {
                    "pipeline_id": str(root.pipeline_id),
                    "node_ids": [j.node_id for j in cancelled],
                }
            },
        )

    async def _fail_permanently(self, pipeline: Pipeline, job: Job) -> None:
        jobs = list(await JobService.list_by_pipeline(self.session, pipeline.id))
        self._cancel_with_descendants(jobs, job, f"Dependency {job.node_id} failed")

        strategy = pipeline.get_option("retry_strategy", RetryStrategy.INDIVIDUAL)
        if strategy == RetryStrategy.STOP_ON_FAILURE:
            for other in jobs:
                if other.status == JobStatus.PENDING:
                    other.cancel(f"Pipeline stopped after failure of {job.node_id}")
        self.monitor.record_warning(
            str(pipeline.id),
            f"Job {job.node_id} failed permanently",
            {"job_id": str(job.id)},
        )

    async def _finalize_if_done(self, pipeline: Pipeline) -> bool:
        if pipeline.status != PipelineStatus.RUNNING:
            return False
        jobs = list(await JobService.list_by_pipeline(self.session, pipeline.id))
        if any(not job.is_terminal for job in jobs):
            return False

        outputs = self.aggregate_outputs(jobs)
        failed = [job for job in jobs if job.status == JobStatus.FAILED]
        if failed:
            pipeline.fail(
                f"{len(failed)} job(s) failed: " + ", ".join(j.node_id for j in failed),
                outputs,
            )
        else:
            pipeline.complete(outputs)

        if self.monitor.is_monitoring(str(pipeline.id)):
            self.monitor.stop_monitoring(str(pipeline.id))
        await self.on_pipeline_finished(pipeline)
        self.logger.info(
            "Pipeline %s finished with status %s",
            pipeline.id,
            pipeline.status,
            extra={
                "context": {
                    "pipeline_id": str(pipeline.id),
                    "status": str(pipeline.status),
                    "failed_jobs": len(failed),
                }
            },
        )
        return True

    async def _begin(self, pipeline: Pipeline) -> bool:
        if pipeline.status == PipelineStatus.PENDING:
            pipeline.start()
            self.monitor.start_monitoring(
                str(pipeline.id),
                {"workflow_id": pipeline.workflow_id, "execution_mode": str(self.execution_mode)},
            )
            self.logger.info(
                "Started pipeline %s",
                pipeline.id,
                extra={"context": {"pipeline_id": str(pipeline.id)}},
            )
            return True
        return pipeline.status == PipelineStatus.RUNNING

    @staticmethod
    def aggregate_outputs(jobs: Iterable[Job]) -> dict[str, Any]:
        """``{node_id: output}`` of the completed jobs."""
        return {job.node_id: job.output_data for job in jobs if job.status == JobStatus.COMPLETED}

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    async def pause_pipeline(self, pipeline_id: Any) -> Pipeline:
        """Pause a running pipeline; jobs in flight may still finish.

        Raises:
            PipelineStateError: If the pipeline is not running.
        """
        async with self._lock:
            pipeline = await PipelineService.get_or_raise(self.session, pipeline_id)
            self._transition(pipeline, "pause", pipeline.pause)
            await self.session.commit()
            return pipeline

    async def resume_pipeline(self, pipeline_id: Any) -> ExecutionResponse:
        """Resume a paused pipeline from its first non-terminal jobs.

        Raises:
            PipelineStateError: If the pipeline is not paused.
        """
        async with self._lock:
            pipeline = await PipelineService.get_or_raise(self.session, pipeline_id)
            self._transition(pipeline, "resume", pipeline.resume)
            await self.session.commit()
        return await self.execute_pipeline(pipeline)

    async def cancel_pipeline(self, pipeline_id: Any) -> Pipeline:
        """Cancel a pipeline and every job that has not started.

        Raises:
            PipelineStateError: If the pipeline is already terminal.
        """
        async with self._lock:
            pipeline = await PipelineService.get_or_raise(self.session, pipeline_id)
            self._transition(pipeline, "cancel", pipeline.cancel)
            jobs = await JobService.list_by_status(self.session, pipeline.id, JobStatus.PENDING)
            for job in jobs:
                job.cancel("Pipeline cancelled")
            if self.monitor.is_monitoring(str(pipeline.id)):
                self.monitor.stop_monitoring(str(pipeline.id))
            await self.on_pipeline_finished(pipeline)
            await self.session.commit()

        self.logger.info(
            "Cancelled pipeline %s (%d pending jobs)",
            pipeline.id,
            len(jobs),
            extra={"context": {"pipeline_id": str(pipeline.id)}},
        )
        return pipeline

    async def reset_pipeline(self, pipeline_id: Any) -> Pipeline:
        """Return a failed or cancelled pipeline and all its jobs to pending.

        Raises:
            PipelineStateError: If the pipeline is neither failed nor cancelled.
        """
        async with self._lock:
            pipeline = await PipelineService.get_or_raise(self.session, pipeline_id)
            self._transition(pipeline, "reset", pipeline.reset)
            jobs = await JobService.list_by_pipeline(self.session, pipeline.id)
            for job in jobs:
                job.reset()
            await self.session.commit()

        self.logger.info(
            "Reset pipeline %s (%d jobs)",
            pipeline.id,
            len(jobs),
            extra={"context": {"pipeline_id": str(pipeline.id)}},
        )
        return pipeline

    @staticmethod
    def _transition(pipeline: Pipeline, operation: str, action: Callable[[], None]) -> None:
        try:
            action()
        except ValueError as e:
            raise PipelineStateError(str(pipeline.id), str(pipeline.status), operation) from e

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def build_response(self, pipeline: Pipeline) -> ExecutionResponse:
        """Snapshot the pipeline and its jobs."""
        async with self._lock:
            jobs = list(await JobService.list_by_pipeline(self.session, pipeline.id))
            job_counts = await PipelineService.get_job_counts(self.session, pipeline.id)

        warnings = [
            f"Node {job.node_id} {job.status}: {job.error_message}"
            for job in jobs
            if job.status in (JobStatus.FAILED, JobStatus.CANCELLED) and job.error_message
        ]
        started = as_utc(pipeline.started_at)
        if pipeline.duration_seconds is not None:
            execution_time = pipeline.duration_seconds
        elif started is not None:
            execution_time = max(0.0, (utcnow() - started).total_seconds())
        else:
            execution_time = 0.0

        return ExecutionResponse(
            pipeline_id=str(pipeline.id),
            status=PipelineStatus(pipeline.status),
            success=pipeline.status == PipelineStatus.COMPLETED,
            outputs=self.aggregate_outputs(jobs),
            job_counts=job_counts,
            execution_time=execution_time,
            error_message=pipeline.error_message,
            warnings=warnings,
        )

    async def get_pipeline(self, pipeline_id: Any) -> Pipeline:
        async with self._lock:
            return await PipelineService.get_or_raise(self.session, as_uuid(pipeline_id))


__all__ = [
    "BRANCH_NOT_TAKEN",
    "BaseOrchestrator",
    "ExecutionResponse",
]
