"""Asynchronous orchestrator.

Publishes one queue message per ready job and returns immediately; a
worker pool executes the messages (see ``flowdrop.services.workflow.worker``)
and reports back through ``run_job``. Each completion re-evaluates the
pipeline and enqueues the jobs it unblocked, which drives the graph
forward.

Enqueueing is idempotent: a job is published only while it is pending and
has no outstanding message (``queued_at`` unset), so re-evaluating a
pipeline never schedules the same work twice.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from flowdrop.core.config import settings
from flowdrop.models.enums import ExecutionMode, JobStatus
from flowdrop.services.workflow.orchestrators.base import BaseOrchestrator, ExecutionResponse
from flowdrop.services.workflow.queue import QueueAction, QueueMessage, WorkQueue

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from flowdrop.models.pipeline import Job, Pipeline


class AsynchronousOrchestrator(BaseOrchestrator):
    """Queue-backed orchestrator.

    Args:
        session: Database session owned by the orchestrator.
        queue: Work queue the ready jobs are published to.
        **kwargs: Collaborators accepted by ``BaseOrchestrator``.
    """

    execution_mode = ExecutionMode.ASYNCHRONOUS

    def __init__(self, session: AsyncSession, queue: WorkQueue, **kwargs: Any) -> None:
        super().__init__(session, **kwargs)
        self.queue = queue
        self._slots: dict[str, asyncio.Semaphore] = {}

    async def start_pipeline(self, pipeline: Pipeline) -> bool:
        """Start the pipeline and enqueue its ready jobs.

        Calling it again on a running pipeline re-evaluates readiness and
        enqueues only jobs that have no outstanding message.
        """
        async with self._lock:
            if not await self._begin(pipeline):
                await self.session.commit()
                return False
            ready = await self._collect_ready_jobs(pipeline)
            await self.on_jobs_ready(ready)
            await self._finalize_if_done(pipeline)
            await self.session.commit()
        return True

    async def execute_pipeline(self, pipeline: Pipeline) -> ExecutionResponse:
        """Dispatch the pipeline without waiting for it.

        Returns:
            ExecutionResponse with the state right after dispatch.
        """
        await self.start_pipeline(pipeline)
        return await self.build_response(pipeline)

    async def on_jobs_ready(self, jobs: Sequence[Job]) -> None:
        published = 0
        for job in jobs:
            if job.status != JobStatus.PENDING or job.is_enqueued:
                continue
            action = QueueAction.RETRY_JOB if job.retry_count else QueueAction.EXECUTE_JOB
            await self.queue.enqueue(
                QueueMessage(
                    action=action,
                    pipeline_id=str(job.pipeline_id),
                    job_id=str(job.id),
                    attempt=job.retry_count,
                )
            )
            job.mark_enqueued()
            published += 1

        if published:
            self.logger.debug(
                "Enqueued %d jobs",
                published,
                extra={"context": {"node_ids": [j.node_id for j in jobs if j.is_enqueued]}},
            )

    async def on_job_requeued(self, job: Job) -> None:
        # The worker publishes the retry message for the requeue decision
        job.mark_enqueued()

    async def on_pipeline_finished(self, pipeline: Pipeline) -> None:
        self._slots.pop(str(pipeline.id), None)

    def _execution_slot(self, pipeline: Pipeline) -> contextlib.AbstractAsyncContextManager[Any]:
        pipeline_id = str(pipeline.id)
        slot = self._slots.get(pipeline_id)
        if slot is None:
            limit = int(pipeline.get_option("max_concurrent_jobs", settings.MAX_CONCURRENT_JOBS))
            slot = self._slots[pipeline_id] = asyncio.Semaphore(max(1, limit))
        return slot


__all__ = ["AsynchronousOrchestrator"]
