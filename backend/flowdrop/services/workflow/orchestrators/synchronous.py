"""Synchronous orchestrator.

Runs the jobs of a pipeline inline, one at a time, in the caller's task,
and returns once the pipeline is terminal (or paused).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flowdrop.models.enums import ExecutionMode, JobStatus, PipelineStatus
from flowdrop.services.pipeline_service import JobService
from flowdrop.services.workflow.orchestrators.base import BaseOrchestrator, ExecutionResponse

if TYPE_CHECKING:
    from flowdrop.models.pipeline import Pipeline


class SynchronousOrchestrator(BaseOrchestrator):
    """Inline orchestrator for tests and small runs.

    Each iteration picks the first ready job (lowest priority value, then
    execution order) and runs it; a job returned to pending by a retry is
    picked up again by the next iteration.
    """

    execution_mode = ExecutionMode.SYNCHRONOUS

    async def start_pipeline(self, pipeline: Pipeline) -> bool:
        async with self._lock:
            running = await self._begin(pipeline)
            await self.session.commit()
        return running

    async def execute_pipeline(self, pipeline: Pipeline) -> ExecutionResponse:
        """Run every runnable job, then finalize the pipeline.

        Returns:
            ExecutionResponse with the final (or paused) state.
        """
        if not await self.start_pipeline(pipeline):
            self.logger.warning(
                "Pipeline %s is %s, nothing to execute",
                pipeline.id,
                pipeline.status,
                extra={"context": {"pipeline_id": str(pipeline.id)}},
            )
            return await self.build_response(pipeline)

        executed = 0
        while pipeline.status == PipelineStatus.RUNNING:
            ready = await self.get_ready_jobs(pipeline)
            if not ready:
                break
            await self.run_job(ready[0])
            executed += 1

        async with self._lock:
            finished = await self._finalize_if_done(pipeline)
            if not finished and pipeline.status == PipelineStatus.RUNNING:
                stalled = await JobService.list_by_status(
                    self.session, pipeline.id, JobStatus.PENDING
                )
                for job in stalled:
                    job.cancel("Dependencies can never complete")
                await self._finalize_if_done(pipeline)
            await self.session.commit()

        self.logger.info(
            "Executed %d job attempts for pipeline %s",
            executed,
            pipeline.id,
            extra={"context": {"pipeline_id": str(pipeline.id), "status": str(pipeline.status)}},
        )
        return await self.build_response(pipeline)


__all__ = ["SynchronousOrchestrator"]
