"""API dependencies.

Database session and execution monitor dependencies shared by the status
routes, and the node runtime in-process orchestrators should share so that
their runs and processor statistics show up under ``/metrics``::

    orchestrator = SynchronousOrchestrator(
        session, runtime=get_node_runtime(), monitor=get_monitor()
    )
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from flowdrop.db.session import get_db
from flowdrop.services.workflow.monitor import ExecutionMonitor
from flowdrop.services.workflow.processors.metrics import MetricsCollector
from flowdrop.services.workflow.runtime import NodeRuntime

# =============================================================================
# Database Session Dependency
# =============================================================================

DBSession = Annotated[AsyncSession, Depends(get_db)]
"""Type alias for database session dependency injection."""


# =============================================================================
# Monitoring Dependencies
# =============================================================================


@lru_cache
def get_monitor() -> ExecutionMonitor:
    """Process-wide execution monitor.

    In-process orchestrators should be constructed with this instance so
    that their runs appear in ``/metrics``.
    """
    return ExecutionMonitor()


@lru_cache
def get_metrics_collector() -> MetricsCollector:
    """Process-wide processor metrics collector.

    Runtimes report into it only when built with it, as ``get_node_runtime`` is.
    """
    return MetricsCollector()


@lru_cache
def get_node_runtime() -> NodeRuntime:
    """Process-wide node runtime reporting to the shared monitor and collector."""
    return NodeRuntime(metrics_collector=get_metrics_collector(), monitor=get_monitor())


Monitor = Annotated[ExecutionMonitor, Depends(get_monitor)]
Metrics = Annotated[MetricsCollector, Depends(get_metrics_collector)]
