"""Service endpoint and error mapping tests."""

import json

import pytest
from httpx import AsyncClient
from starlette.requests import Request

from flowdrop import __version__
from flowdrop.core.exceptions import FlowDropError, ResourceNotFoundError
from flowdrop.main import flowdrop_error_handler, not_found_handler


def make_request(path: str = "/api/v1/pipelines") -> Request:
    return Request({"type": "http", "method": "GET", "path": path, "headers": []})


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient) -> None:
    """Test health check endpoint returns healthy status."""
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_root_endpoint(async_client: AsyncClient) -> None:
    """Test root endpoint returns service info."""
    response = await async_client.get("/")

    assert response.json() == {
        "name": "FlowDrop Engine",
        "version": __version__,
        "docs": "/docs",
    }


@pytest.mark.asyncio
async def test_api_v1_status(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/status")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": "v1"}


@pytest.mark.asyncio
async def test_not_found_mapping() -> None:
    """Test lookup errors become 404 responses."""
    response = await not_found_handler(make_request(), ResourceNotFoundError("job", "j1"))

    assert response.status_code == 404
    assert json.loads(response.body) == {"detail": "Job j1 not found"}


@pytest.mark.asyncio
async def test_engine_error_mapping() -> None:
    """Test engine errors become 400 responses with their code."""
    error = FlowDropError("bad graph", error_code="COMPILATION_ERROR", details={"node": "a"})

    response = await flowdrop_error_handler(make_request(), error)

    assert response.status_code == 400
    assert json.loads(response.body) == {
        "error": "FlowDropError",
        "error_code": "COMPILATION_ERROR",
        "message": "bad graph",
        "details": {"node": "a"},
    }
