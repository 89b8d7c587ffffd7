"""Pipeline and job services.

Static async query helpers over ``AsyncSession`` used by the job
generator, the orchestrators and the status API. Callers own the
transaction: services flush but never commit.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select

from flowdrop.core.exceptions import ResourceNotFoundError
from flowdrop.models.enums import ExecutionMode, JobStatus, PipelineStatus
from flowdrop.models.pipeline import Job, Pipeline

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession


def as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    """Coerce an id given as string into a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class PipelineService:
    """Service for managing Pipeline records."""

    @staticmethod
    async def create(
        db: AsyncSession,
        workflow_id: str,
        label: str = "",
        input_data: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
        execution_mode: ExecutionMode = ExecutionMode.SYNCHRONOUS,
    ) -> Pipeline:
        """Create a pending pipeline.

        Args:
            db: Database session.
            workflow_id: Id of the compiled workflow.
            label: Display label.
            input_data: Initial data merged into every job's inputs.
            options: Orchestration options.
            execution_mode: Orchestrator that will drive the pipeline.

        Returns:
            The created Pipeline instance.
        """
        pipeline = Pipeline(
            id=uuid.uuid4(),
            workflow_id=workflow_id,
            label=label,
            status=PipelineStatus.PENDING,
            execution_mode=execution_mode,
            input_data=dict(input_data or {}),
            options=dict(options or {}),
        )
        db.add(pipeline)
        await db.flush()
        return pipeline

    @staticmethod
    async def get(
        db: AsyncSession,
        pipeline_id: uuid.UUID | str,
    ) -> Pipeline | None:
        """Get a pipeline by ID, None if it does not exist."""
        result = await db.execute(
            select(Pipeline).where(Pipeline.id == as_uuid(pipeline_id))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_raise(
        db: AsyncSession,
        pipeline_id: uuid.UUID | str,
    ) -> Pipeline:
        """Get a pipeline by ID.

        Raises:
            ResourceNotFoundError: If the pipeline does not exist.
        """
        pipeline = await PipelineService.get(db, pipeline_id)
        if pipeline is None:
            raise ResourceNotFoundError("pipeline", str(pipeline_id))
        return pipeline

    @staticmethod
    async def list(
        db: AsyncSession,
        status: PipelineStatus | None = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Sequence[Pipeline]:
        """List pipelines, most recent first."""
        query = select(Pipeline)
        if status is not None:
            query = query.where(Pipeline.status == status)
        query = query.order_by(Pipeline.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def get_job_counts(
        db: AsyncSession,
        pipeline_id: uuid.UUID | str,
    ) -> dict[str, int]:
        """Count the jobs of a pipeline per status.

        Counts are derived from the job table on every call.

        Returns:
            ``{"total": n, "pending": n, "running": n, "completed": n,
            "failed": n, "cancelled": n}``
        """
        result = await db.execute(
            select(Job.status, func.count(Job.id))
            .where(Job.pipeline_id == as_uuid(pipeline_id))
            .group_by(Job.status)
        )
        counts = {status.value: 0 for status in JobStatus}
        for status, count in result.all():
            counts[str(status)] = count
        return {"total": sum(counts.values()), **counts}


class JobService:
    """Service for querying and deleting Job records."""

    @staticmethod
    async def get(
        db: AsyncSession,
        job_id: uuid.UUID | str,
    ) -> Job | None:
        """Get a job by ID, None if it does not exist."""
        result = await db.execute(select(Job).where(Job.id == as_uuid(job_id)))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_pipeline(
        db: AsyncSession,
        pipeline_id: uuid.UUID | str,
    ) -> Sequence[Job]:
        """List the jobs of a pipeline in execution order."""
        result = await db.execute(
            select(Job)
            .where(Job.pipeline_id == as_uuid(pipeline_id))
            .order_by(Job.position)
        )
        return result.scalars().all()

    @staticmethod
    async def list_by_status(
        db: AsyncSession,
        pipeline_id: uuid.UUID | str,
        status: JobStatus,
    ) -> Sequence[Job]:
        """List the jobs of a pipeline in a given status, in execution order."""
        result = await db.execute(
            select(Job)
            .where(Job.pipeline_id == as_uuid(pipeline_id), Job.status == status)
            .order_by(Job.position)
        )
        return result.scalars().all()

    @staticmethod
    async def get_dependents(db: AsyncSession, job: Job) -> list[Job]:
        """Jobs of the same pipeline listing ``job`` in their ``depends_on``."""
        job_id = str(job.id)
        jobs = await JobService.list_by_pipeline(db, job.pipeline_id)
        return [candidate for candidate in jobs if job_id in (candidate.depends_on or [])]

    @staticmethod
    async def count_by_pipeline(
        db: AsyncSession,
        pipeline_id: uuid.UUID | str,
    ) -> int:
        result = await db.execute(
            select(func.count(Job.id)).where(Job.pipeline_id == as_uuid(pipeline_id))
        )
        return result.scalar_one()

    @staticmethod
    async def delete_by_pipeline(
        db: AsyncSession,
        pipeline_id: uuid.UUID | str,
    ) -> int:
        """Delete every job of a pipeline.

        Returns:
            Number of deleted jobs.
        """
        count = await JobService.count_by_pipeline(db, pipeline_id)
        await db.execute(
            delete(Job)
            .where(Job.pipeline_id == as_uuid(pipeline_id))
            .execution_options(synchronize_session="fetch")
        )
        await db.flush()
        return count


__all__ = [
    "JobService",
    "PipelineService",
    "as_uuid",
]
