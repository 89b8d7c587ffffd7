"""SQLAlchemy models.

This package contains the pipeline and job persistence models.
"""

from flowdrop.models.base import GUID, Base, JSONType, TimestampMixin, UUIDMixin
from flowdrop.models.enums import (
    ExecutionMode,
    JobStatus,
    PipelineStatus,
    PriorityStrategy,
    RetryStrategy,
)
from flowdrop.models.pipeline import Job, Pipeline

__all__ = [
    # Base classes
    "Base",
    "GUID",
    "JSONType",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "ExecutionMode",
    "JobStatus",
    "PipelineStatus",
    "PriorityStrategy",
    "RetryStrategy",
    # Models
    "Job",
    "Pipeline",
]
