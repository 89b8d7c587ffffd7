"""Queue workers.

``JobExecutionWorker`` turns one queue message into one job attempt and
applies the resulting ``RetryDecision`` to the queue. ``WorkerPool`` runs
a fixed number of asyncio tasks pulling messages concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from flowdrop.core.config import settings
from flowdrop.models.enums import JobStatus
from flowdrop.services.workflow.queue import QueueMessage, WorkQueue
from flowdrop.services.workflow.retry import RetryDecision

if TYPE_CHECKING:
    from flowdrop.services.workflow.orchestrators.base import BaseOrchestrator

MessageHandler = Callable[[QueueMessage], Awaitable[Any]]


class JobExecutionWorker:
    """Executes queued jobs through an orchestrator.

    Args:
        orchestrator: Orchestrator owning the jobs (usually asynchronous).
        queue: Queue the messages come from; decisions are applied to it.
        logger: Logger, defaults to the module logger.
    """

    def __init__(
        self,
        orchestrator: BaseOrchestrator,
        queue: WorkQueue,
        logger: logging.Logger | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.queue = queue
        self.logger = logger or logging.getLogger(__name__)

    async def __call__(self, message: QueueMessage) -> RetryDecision:
        return await self.process_message(message)

    async def process_message(self, message: QueueMessage) -> RetryDecision:
        """Run the job a message references and settle the message.

        - unknown job or job without a node id: dead-lettered
        - job already terminal or held by another delivery: acknowledged
        - otherwise the job runs and the orchestrator's decision is applied

        Returns:
            The decision applied to the message.
        """
        log_context = {
            "pipeline_id": message.pipeline_id,
            "job_id": message.job_id,
            "attempt": message.attempt,
            "action": str(message.action),
        }

        try:
            job = await self.orchestrator.get_job(message.job_id)
        except ValueError:
            job = None

        if job is None:
            return await self._apply(message, RetryDecision.SUSPEND, "Job not found")
        if not job.node_id:
            return await self._apply(message, RetryDecision.SUSPEND, "Job has no node id")
        if job.status != JobStatus.PENDING:
            self.logger.info(
                "Skipping job %s in %s state",
                message.job_id,
                job.status,
                extra={"context": log_context},
            )
            return await self._apply(message, RetryDecision.CONTINUE)

        try:
            decision = await self.orchestrator.run_job(job)
        except Exception as e:
            self.logger.exception(
                "Unexpected error processing job %s",
                message.job_id,
                extra={"context": log_context},
            )
            return await self._apply(message, RetryDecision.SUSPEND, f"{type(e).__name__}: {e}")

        return await self._apply(message, decision, job.error_message or "")

    async def _apply(
        self,
        message: QueueMessage,
        decision: RetryDecision,
        reason: str = "",
    ) -> RetryDecision:
        if decision is RetryDecision.REQUEUE:
            await self.queue.enqueue(message.next_attempt())
            await self.queue.ack(message)
        elif decision is RetryDecision.SUSPEND:
            await self.queue.dead_letter(message, reason or "Suspended")
        else:
            await self.queue.ack(message)

        self.logger.debug(
            "Message %s settled: %s",
            message.message_id,
            decision,
            extra={"context": {"job_id": message.job_id, "decision": str(decision)}},
        )
        return decision


class WorkerPool:
    """A fixed number of asyncio tasks consuming a work queue.

    Args:
        queue: Queue to consume.
        handler: Coroutine called with every message (a ``JobExecutionWorker``).
        size: Number of concurrent workers.
        poll_interval: Seconds a worker blocks on an empty queue before
            checking whether it should stop.
    """

    def __init__(
        self,
        queue: WorkQueue,
        handler: MessageHandler,
        size: int | None = None,
        poll_interval: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.queue = queue
        self.handler = handler
        self.size = size or settings.WORKER_COUNT
        self.poll_interval = poll_interval or settings.QUEUE_POLL_INTERVAL_SECONDS
        self.logger = logger or logging.getLogger(__name__)
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()
        self._active = 0
        self.processed = 0

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def active(self) -> int:
        """Number of messages being handled right now."""
        return self._active

    async def start(self) -> None:
        if self.is_running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._run(index), name=f"flowdrop-worker-{index}")
            for index in range(self.size)
        ]
        self.logger.info("Started %d workers", self.size)

    async def stop(self) -> None:
        """Stop the workers once their current message is handled."""
        self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self.logger.info("Stopped workers after %d messages", self.processed)

    async def wait_idle(self, timeout: float | None = None, check_interval: float = 0.01) -> None:
        """Wait until the queue is empty and no worker is busy.

        Raises:
            TimeoutError: If the pool is still busy after ``timeout`` seconds.
        """
        async with asyncio.timeout(timeout):
            idle_checks = 0
            # Two consecutive idle observations, a message may be in transit
            while idle_checks < 2:
                await asyncio.sleep(check_interval)
                if self._active == 0 and await self.queue.size() == 0:
                    idle_checks += 1
                else:
                    idle_checks = 0

    async def _run(self, index: int) -> None:
        while not self._stopping.is_set():
            message = await self.queue.dequeue(timeout=self.poll_interval)
            if message is None:
                continue
            self._active += 1
            try:
                await self.handler(message)
            except Exception:
                self.logger.exception(
                    "Worker %d failed handling message %s",
                    index,
                    message.message_id,
                    extra={"context": {"job_id": message.job_id}},
                )
            finally:
                self._active -= 1
                self.processed += 1


__all__ = [
    "JobExecutionWorker",
    "MessageHandler",
    "WorkerPool",
]
