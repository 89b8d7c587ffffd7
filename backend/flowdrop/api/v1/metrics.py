"""Execution metrics API router."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from flowdrop.api.deps import Metrics, Monitor  # noqa: TC001 - Required at runtime for FastAPI
from flowdrop.schemas.pipeline import MetricsResponse

router = APIRouter()


@router.get(
    "/",
    response_model=MetricsResponse,
    summary="Get aggregate metrics",
    description="Aggregate counters over active and finished monitored runs.",
)
async def get_metrics(monitor: Monitor, collector: Metrics) -> MetricsResponse:
    return MetricsResponse(
        **monitor.get_performance_metrics(),
        processors=collector.get_summary(),
    )


@router.get(
    "/{execution_id}",
    summary="Get run report",
    description="Live status of an active run, or the final report of a finished one.",
)
async def get_execution_report(
    monitor: Monitor,
    execution_id: Annotated[str, Path(description="Pipeline identifier")],
) -> dict:
    """Get the monitoring report of one run.

    Raises:
        HTTPException: 404 if the run was never monitored or its report expired.
    """
    report = monitor.get_detailed_report(execution_id)
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No monitoring report for execution {execution_id}",
        )
    return report
