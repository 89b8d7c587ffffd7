"""FastAPI application entry point.

This module defines the status API application with CORS middleware,
lifespan management, and API routing configuration.

Logging:
    Initializes structured logging on application startup.
    All application events are logged with appropriate context.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowdrop import __version__
from flowdrop.api import router as api_router
from flowdrop.core.config import settings
from flowdrop.core.exceptions import FlowDropError, ResourceNotFoundError
from flowdrop.core.logging import get_logger, setup_logging
from flowdrop.db.session import engine, init_models

# Initialize logging system
setup_logging(
    log_level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    service_name=settings.PROJECT_NAME,
    enable_json=settings.LOG_JSON_FORMAT,
)

# Get application logger
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:  # noqa: ARG001 - Required by FastAPI lifespan interface
    """Create the pipeline tables on startup, dispose of the engine on shutdown.

    The status API only reads; pipelines are driven by orchestrators and
    worker processes sharing the same database.
    """
    logger.info(
        "Starting %s %s",
        settings.PROJECT_NAME,
        __version__,
        extra={
            "context": {
                "action": "application_startup",
                "database": engine.url.render_as_string(hide_password=True),
                "queue": "redis" if settings.REDIS_URL else "memory",
                "workers": settings.WORKER_COUNT,
                "max_retries": settings.DEFAULT_MAX_RETRIES,
            }
        },
    )
    await init_models()

    yield

    await engine.dispose()
    logger.info(
        "Stopped %s",
        settings.PROJECT_NAME,
        extra={"context": {"action": "application_shutdown"}},
    )


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Workflow compilation and orchestration engine",
    version=__version__,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.exception_handler(ResourceNotFoundError)
async def not_found_handler(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(FlowDropError)
async def flowdrop_error_handler(request: Request, exc: FlowDropError) -> JSONResponse:
    logger.warning(
        "Request failed: %s",
        exc.message,
        extra={"context": {"path": request.url.path, "error_code": exc.error_code}},
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_dict())


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status indicating the service is running.
    """
    return {"status": "healthy"}


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint.

    Returns basic API information.
    """
    return {
        "name": settings.PROJECT_NAME,
        "version": __version__,
        "docs": "/docs",
    }
