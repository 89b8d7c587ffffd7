"""Pipeline orchestrators.

``SynchronousOrchestrator`` runs jobs inline; ``AsynchronousOrchestrator``
publishes them to a work queue consumed by a worker pool.
"""

from flowdrop.services.workflow.orchestrators.asynchronous import AsynchronousOrchestrator
from flowdrop.services.workflow.orchestrators.base import (
    BRANCH_NOT_TAKEN,
    BaseOrchestrator,
    ExecutionResponse,
)
from flowdrop.services.workflow.orchestrators.synchronous import SynchronousOrchestrator

__all__ = [
    "BRANCH_NOT_TAKEN",
    "AsynchronousOrchestrator",
    "BaseOrchestrator",
    "ExecutionResponse",
    "SynchronousOrchestrator",
]
