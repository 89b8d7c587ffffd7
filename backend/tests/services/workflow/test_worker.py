"""Tests for JobExecutionWorker and WorkerPool."""

import asyncio
import uuid
from typing import Any

import pytest

from flowdrop.models import Job, JobStatus
from flowdrop.services.workflow.queue import InMemoryWorkQueue, QueueAction, QueueMessage
from flowdrop.services.workflow.retry import RetryDecision
from flowdrop.services.workflow.worker import JobExecutionWorker, WorkerPool


def make_job(**overrides: Any) -> Job:
    values: dict[str, Any] = {
        "id": uuid.uuid4(),
        "pipeline_id": uuid.uuid4(),
        "node_id": "n1",
        "processor_type": "record",
        "status": JobStatus.PENDING,
        "retry_count": 0,
        "max_retries": 3,
    }
    values.update(overrides)
    return Job(**values)


class FakeOrchestrator:
    """Returns canned jobs and decisions."""

    def __init__(self, jobs: dict[str, Job], decision: RetryDecision = RetryDecision.CONTINUE):
        self.jobs = jobs
        self.decision = decision
        self.error: Exception | None = None
        self.runs: list[str] = []

    async def get_job(self, job_id: str) -> Job | None:
        if job_id == "not-a-uuid":
            raise ValueError("badly formed hexadecimal UUID string")
        return self.jobs.get(job_id)

    async def run_job(self, job: Job) -> RetryDecision:
        self.runs.append(job.node_id)
        if self.error is not None:
            raise self.error
        if self.decision is not RetryDecision.CONTINUE:
            job.error_message = "upstream unavailable"
        return self.decision


async def deliver(queue: InMemoryWorkQueue, job_id: str, attempt: int = 0) -> QueueMessage:
    await queue.enqueue(QueueMessage(pipeline_id="p1", job_id=job_id, attempt=attempt))
    return await queue.dequeue(timeout=0)


class TestJobExecutionWorker:
    """Message handling and decision application."""

    @pytest.mark.asyncio
    async def test_continue_acks(self, work_queue: InMemoryWorkQueue) -> None:
        job = make_job()
        orchestrator = FakeOrchestrator({str(job.id): job})
        worker = JobExecutionWorker(orchestrator, work_queue)

        decision = await worker.process_message(await deliver(work_queue, str(job.id)))

        assert decision is RetryDecision.CONTINUE
        assert orchestrator.runs == ["n1"]
        assert await work_queue.size() == 0
        await asyncio.wait_for(work_queue.join(), timeout=1)

    @pytest.mark.asyncio
    async def test_requeue_publishes_next_attempt(self, work_queue: InMemoryWorkQueue) -> None:
        job = make_job()
        worker = JobExecutionWorker(
            FakeOrchestrator({str(job.id): job}, RetryDecision.REQUEUE), work_queue
        )

        decision = await worker(await deliver(work_queue, str(job.id), attempt=1))

        assert decision is RetryDecision.REQUEUE
        retry = await work_queue.dequeue(timeout=0)
        assert retry.action is QueueAction.RETRY_JOB
        assert retry.attempt == 2
        assert work_queue.dead_letters == []

    @pytest.mark.asyncio
    async def test_suspend_dead_letters_with_job_error(self, work_queue: InMemoryWorkQueue) -> None:
        job = make_job()
        worker = JobExecutionWorker(
            FakeOrchestrator({str(job.id): job}, RetryDecision.SUSPEND), work_queue
        )

        decision = await worker.process_message(await deliver(work_queue, str(job.id)))

        assert decision is RetryDecision.SUSPEND
        assert work_queue.dead_letters[0][1] == "upstream unavailable"

    @pytest.mark.asyncio
    async def test_unknown_job_is_dead_lettered(self, work_queue: InMemoryWorkQueue) -> None:
        worker = JobExecutionWorker(FakeOrchestrator({}), work_queue)

        decision = await worker.process_message(await deliver(work_queue, str(uuid.uuid4())))

        assert decision is RetryDecision.SUSPEND
        assert work_queue.dead_letters[0][1] == "Job not found"

    @pytest.mark.asyncio
    async def test_malformed_job_id_is_dead_lettered(self, work_queue: InMemoryWorkQueue) -> None:
        worker = JobExecutionWorker(FakeOrchestrator({}), work_queue)

        decision = await worker.process_message(await deliver(work_queue, "not-a-uuid"))

        assert decision is RetryDecision.SUSPEND
        assert work_queue.dead_letters[0][1] == "Job not found"

    @pytest.mark.asyncio
    async def test_job_without_node_is_dead_lettered(self, work_queue: InMemoryWorkQueue) -> None:
        job = make_job(node_id="")
        orchestrator = FakeOrchestrator({str(job.id): job})
        worker = JobExecutionWorker(orchestrator, work_queue)

        await worker.process_message(await deliver(work_queue, str(job.id)))

        assert work_queue.dead_letters[0][1] == "Job has no node id"
        assert orchestrator.runs == []

    @pytest.mark.asyncio
    async def test_non_pending_job_is_skipped(self, work_queue: InMemoryWorkQueue) -> None:
        job = make_job(status=JobStatus.COMPLETED)
        orchestrator = FakeOrchestrator({str(job.id): job})
        worker = JobExecutionWorker(orchestrator, work_queue)

        decision = await worker.process_message(await deliver(work_queue, str(job.id)))

        assert decision is RetryDecision.CONTINUE
        assert orchestrator.runs == []
        assert work_queue.dead_letters == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_dead_lettered(self, work_queue: InMemoryWorkQueue) -> None:
        job = make_job()
        orchestrator = FakeOrchestrator({str(job.id): job})
        orchestrator.error = RuntimeError("session closed")
        worker = JobExecutionWorker(orchestrator, work_queue)

        decision = await worker.process_message(await deliver(work_queue, str(job.id)))

        assert decision is RetryDecision.SUSPEND
        assert work_queue.dead_letters[0][1] == "RuntimeError: session closed"


class TestWorkerPool:
    """Concurrent consumption."""

    @pytest.mark.asyncio
    async def test_processes_every_message_concurrently(self, work_queue: InMemoryWorkQueue) -> None:
        running = 0
        peak = 0

        async def handler(message: QueueMessage) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1
            await work_queue.ack(message)

        for index in range(6):
            await work_queue.enqueue(QueueMessage(pipeline_id="p1", job_id=f"j{index}"))

        pool = WorkerPool(work_queue, handler, size=3, poll_interval=0.01)
        await pool.start()
        assert pool.is_running is True
        await pool.wait_idle(timeout=2)
        await pool.stop()

        assert pool.processed == 6
        assert peak == 3
        assert pool.active == 0
        assert pool.is_running is False

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_kill_workers(self, work_queue: InMemoryWorkQueue) -> None:
        handled: list[str] = []

        async def handler(message: QueueMessage) -> None:
            await work_queue.ack(message)
            if message.job_id == "boom":
                raise RuntimeError("handler failed")
            handled.append(message.job_id)

        await work_queue.enqueue(QueueMessage(pipeline_id="p1", job_id="boom"))
        await work_queue.enqueue(QueueMessage(pipeline_id="p1", job_id="ok"))

        pool = WorkerPool(work_queue, handler, size=1, poll_interval=0.01)
        await pool.start()
        await pool.wait_idle(timeout=2)
        await pool.stop()

        assert handled == ["ok"]
        assert pool.processed == 2

    @pytest.mark.asyncio
    async def test_wait_idle_times_out(self, work_queue: InMemoryWorkQueue) -> None:
        async def handler(message: QueueMessage) -> None:
            await asyncio.sleep(1)

        await work_queue.enqueue(QueueMessage(pipeline_id="p1", job_id="slow"))
        pool = WorkerPool(work_queue, handler, size=1, poll_interval=0.01)
        await pool.start()

        with pytest.raises(TimeoutError):
            await pool.wait_idle(timeout=0.05)

        await pool.stop()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_workers(self, work_queue: InMemoryWorkQueue) -> None:
        async def handler(message: QueueMessage) -> None:
            return None

        pool = WorkerPool(work_queue, handler, size=2, poll_interval=0.01)
        await pool.start()
        tasks = list(pool._tasks)
        await pool.start()

        assert pool._tasks == tasks
        await pool.stop()
