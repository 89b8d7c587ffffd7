"""Durable work queue for asynchronous pipeline execution.

Messages reference a job; the queue provides at-least-once delivery and
no ordering guarantee across dependencies. Dependency order is enforced
by the orchestrator, which only enqueues jobs whose dependencies have
completed.

Two implementations share the ``WorkQueue`` protocol:

- ``InMemoryWorkQueue``: asyncio.Queue, for tests and single-process runs
- ``RedisWorkQueue``: Redis lists. ``LPUSH`` enqueues, ``BLMOVE`` moves a
  message into a processing list while a worker holds it, ``LREM`` acks it,
  and failed messages land in a dead-letter list.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from flowdrop.core.config import settings

logger = logging.getLogger(__name__)


class QueueAction(str, Enum):
    """What a worker does with a message."""

    EXECUTE_JOB = "execute_job"
    RETRY_JOB = "retry_job"

    def __str__(self) -> str:
        return self.value


class QueueMessage(BaseModel):
    """A unit of queued work: one attempt at one job.

    Attributes:
        message_id: Unique id of this delivery
        action: execute_job for a first attempt, retry_job afterwards
        pipeline_id: Pipeline the job belongs to
        job_id: Job to execute
        attempt: Attempt number, 0 for the first delivery
        enqueued_at: When the message was created
    """

    message_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    action: QueueAction = QueueAction.EXECUTE_JOB
    pipeline_id: str
    job_id: str
    attempt: int = Field(default=0, ge=0)
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def next_attempt(self) -> QueueMessage:
        """Message for the retry of this job."""
        return QueueMessage(
            action=QueueAction.RETRY_JOB,
            pipeline_id=self.pipeline_id,
            job_id=self.job_id,
            attempt=self.attempt + 1,
        )


@runtime_checkable
class WorkQueue(Protocol):
    """Interface shared by the queue implementations."""

    async def enqueue(self, message: QueueMessage) -> None: ...

    async def dequeue(self, timeout: float | None = None) -> QueueMessage | None: ...

    async def ack(self, message: QueueMessage) -> None: ...

    async def dead_letter(self, message: QueueMessage, reason: str) -> None: ...

    async def size(self) -> int: ...

    async def close(self) -> None: ...


class InMemoryWorkQueue:
    """Process-local queue backed by ``asyncio.Queue``.

    Dead-lettered messages are kept in ``dead_letters`` with their reason.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[QueueMessage] = asyncio.Queue()
        self.dead_letters: list[tuple[QueueMessage, str]] = []

    async def enqueue(self, message: QueueMessage) -> None:
        self._queue.put_nowait(message)

    async def dequeue(self, timeout: float | None = None) -> QueueMessage | None:
        """Take the next message.

        Args:
            timeout: Seconds to wait; None waits forever, 0 never waits.

        Returns:
            The message, or None if none arrived in time.
        """
        if timeout == 0:
            try:
                return self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return None
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except TimeoutError:
            return None

    async def ack(self, message: QueueMessage) -> None:
        self._queue.task_done()

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        self.dead_letters.append((message, reason))
        self._queue.task_done()

    async def size(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        """Wait until every dequeued message has been acked or dead-lettered."""
        await self._queue.join()

    async def close(self) -> None:
        return None


class RedisWorkQueue:
    """Redis-backed durable queue.

    Messages held by a worker stay in ``{name}:processing`` until acked,
    so a crashed worker's messages can be recovered with
    ``requeue_processing``.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        queue_name: str | None = None,
        redis: Redis | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            redis_url: Redis connection URL (from settings if None)
            queue_name: Base key of the queue lists
            redis: Existing client, takes precedence over ``redis_url``
        """
        self.queue_name = queue_name or settings.QUEUE_NAME
        self.processing_key = f"{self.queue_name}:processing"
        self.dead_letter_key = f"{self.queue_name}:dead"
        self._pool: ConnectionPool | None = None
        # Raw payloads of messages held by this process, for LREM
        self._held: dict[str, str] = {}

        if redis is not None:
            self._redis = redis
        else:
            url = redis_url or (str(settings.REDIS_URL) if settings.REDIS_URL else None)
            if not url:
                raise ValueError("A Redis URL is required for RedisWorkQueue")
            self._pool = ConnectionPool.from_url(url, decode_responses=True)
            self._redis = Redis(connection_pool=self._pool)

    async def enqueue(self, message: QueueMessage) -> None:
        await self._redis.lpush(self.queue_name, message.model_dump_json())

    async def dequeue(self, timeout: float | None = None) -> QueueMessage | None:
        """Move the oldest message into the processing list and return it.

        Args:
            timeout: Seconds to block; None blocks forever, 0 never blocks.
        """
        if timeout == 0:
            raw = await self._redis.lmove(self.queue_name, self.processing_key, "RIGHT", "LEFT")
        else:
            raw = await self._redis.blmove(
                self.queue_name,
                self.processing_key,
                timeout or 0,
                "RIGHT",
                "LEFT",
            )
        if raw is None:
            return None

        try:
            message = QueueMessage.model_validate_json(raw)
        except ValueError:
            logger.error("Discarding malformed queue message: %r", raw)
            await self._redis.lrem(self.processing_key, 1, raw)
            await self._redis.lpush(self.dead_letter_key, raw)
            return None

        self._held[message.message_id] = raw
        return message

    async def ack(self, message: QueueMessage) -> None:
        raw = self._held.pop(message.message_id, None) or message.model_dump_json()
        await self._redis.lrem(self.processing_key, 1, raw)

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        raw = self._held.pop(message.message_id, None) or message.model_dump_json()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.processing_key, 1, raw)
            pipe.lpush(
                self.dead_letter_key,
                DeadLetter(message=message, reason=reason).model_dump_json(),
            )
            await pipe.execute()
        logger.warning(
            "Dead-lettered job %s: %s",
            message.job_id,
            reason,
            extra={"context": {"pipeline_id": message.pipeline_id, "job_id": message.job_id}},
        )

    async def size(self) -> int:
        return await self._redis.llen(self.queue_name)

    async def requeue_processing(self) -> int:
        """Move every message left in the processing list back to the queue.

        Returns:
            Number of recovered messages.
        """
        moved = 0
        while await self._redis.lmove(self.processing_key, self.queue_name, "RIGHT", "RIGHT"):
            moved += 1
        if moved:
            logger.info("Recovered %d unacknowledged queue messages", moved)
        return moved

    async def close(self) -> None:
        """Close the Redis connection pool."""
        try:
            await self._redis.aclose()
            if self._pool:
                await self._pool.disconnect()
        except RedisError as e:
            logger.warning("Failed to close work queue connection: %s", e)


class DeadLetter(BaseModel):
    """Dead-letter list entry."""

    message: QueueMessage
    reason: str
    failed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


def create_work_queue(redis_url: str | None = None) -> WorkQueue:
    """Pick the queue implementation from configuration.

    Redis is used when a URL is given or configured, the in-memory queue
    otherwise.
    """
    url = redis_url or (str(settings.REDIS_URL) if settings.REDIS_URL else None)
    if url:
        logger.info("Using Redis work queue %s", settings.QUEUE_NAME)
        return RedisWorkQueue(redis_url=url)
    logger.info("Using in-memory work queue")
    return InMemoryWorkQueue()


__all__ = [
    "DeadLetter",
    "InMemoryWorkQueue",
    "QueueAction",
    "QueueMessage",
    "RedisWorkQueue",
    "WorkQueue",
    "create_work_queue",
]
