"""API v1 routing configuration.

This module defines all v1 API routes.
"""

from fastapi import APIRouter

from flowdrop.api.v1 import metrics, pipelines

router = APIRouter()

# Domain routers
router.include_router(pipelines.router, prefix="/pipelines", tags=["Pipelines"])
router.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])


@router.get("/status", tags=["Status"])
async def api_status() -> dict[str, str]:
    """API v1 status check."""
    return {"status": "ok", "version": "v1"}
