"""Service layer for pipelines, jobs and the workflow engine."""

from flowdrop.services.pipeline_service import JobService, PipelineService

__all__ = [
    "JobService",
    "PipelineService",
]
