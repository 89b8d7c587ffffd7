"""Pipeline status API router.

Read-only endpoints for polling consumers: pipeline status with its
derived job counts and the status of every node's job.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from flowdrop.api.deps import DBSession  # noqa: TC001 - Required at runtime for FastAPI
from flowdrop.models.enums import (  # noqa: TC001 - Required at runtime for FastAPI
    PipelineStatus,
)
from flowdrop.schemas.pipeline import (
    JobCounts,
    NodeStatusResponse,
    PipelineNodesResponse,
    PipelineStatusResponse,
)
from flowdrop.services.pipeline_service import JobService, PipelineService

router = APIRouter()


PipelineIdPath = Annotated[
    UUID,
    Path(
        ...,
        description="Unique identifier of the pipeline",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    ),
]


async def _status_response(db: DBSession, pipeline_id: UUID) -> PipelineStatusResponse:
    pipeline = await PipelineService.get(db, pipeline_id)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Pipeline with ID {pipeline_id} not found",
        )
    counts = JobCounts(**await PipelineService.get_job_counts(db, pipeline_id))
    finished = counts.completed + counts.failed + counts.cancelled
    response = PipelineStatusResponse.model_validate(pipeline)
    response.job_counts = counts
    response.progress = finished / counts.total if counts.total else 0.0
    return response


@router.get(
    "/",
    response_model=list[PipelineStatusResponse],
    summary="List pipelines",
    description="List pipeline runs, most recent first.",
)
async def list_pipelines(
    db: DBSession,
    pipeline_status: Annotated[
        PipelineStatus | None,
        Query(alias="status", description="Filter by pipeline status"),
    ] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> list[PipelineStatusResponse]:
    pipelines = await PipelineService.list(db, status=pipeline_status, skip=skip, limit=limit)
    return [await _status_response(db, pipeline.id) for pipeline in pipelines]


@router.get(
    "/{pipeline_id}/status",
    response_model=PipelineStatusResponse,
    summary="Get pipeline status",
    description="Current pipeline status with job counts derived from its jobs.",
)
async def get_pipeline_status(
    db: DBSession,
    pipeline_id: PipelineIdPath,
) -> PipelineStatusResponse:
    """Get the status of a pipeline.

    Args:
        db: Database session.
        pipeline_id: UUID of the pipeline.

    Returns:
        Pipeline status and job counts.

    Raises:
        HTTPException: 404 if pipeline not found.
    """
    return await _status_response(db, pipeline_id)


@router.get(
    "/{pipeline_id}/nodes",
    response_model=PipelineNodesResponse,
    summary="Get per-node status",
    description="Status of the job of every node, in execution order.",
)
async def get_pipeline_nodes(
    db: DBSession,
    pipeline_id: PipelineIdPath,
) -> PipelineNodesResponse:
    """Get the per-node status of a pipeline.

    Raises:
        HTTPException: 404 if pipeline not found.
    """
    pipeline = await PipelineService.get(db, pipeline_id)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Pipeline with ID {pipeline_id} not found",
        )
    jobs = await JobService.list_by_pipeline(db, pipeline_id)
    return PipelineNodesResponse(
        pipeline_id=pipeline.id,
        status=pipeline.status,
        nodes=[NodeStatusResponse.model_validate(job) for job in jobs],
    )
