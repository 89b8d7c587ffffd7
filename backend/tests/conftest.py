"""pytest configuration and fixtures.

This module provides the fixtures shared by the engine tests:

- async SQLite in-memory engine, session factory and session
- HTTP client bound to the status API with the test session
- a fresh processor registry holding the built-in processors plus test
  processors (recording, failing, unavailable, flaky)
- orchestrator collaborators wired to that registry
- workflow graph builders (chain, diamond, gateway)
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any, cast

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from starlette.types import ASGIApp

from flowdrop.db.session import init_models
from flowdrop.main import app
from flowdrop.models import Base
from flowdrop.services.workflow.monitor import MB, ExecutionMonitor
from flowdrop.services.workflow.processors import (
    BaseProcessor,
    MetricsCollector,
    ProcessorRegistry,
    ProcessorSettings,
    register_builtin_processors,
)
from flowdrop.services.workflow.queue import InMemoryWorkQueue
from flowdrop.services.workflow.runtime import NodeRuntime

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )


# =============================================================================
# ASYNC ENGINE FIXTURES (SQLite In-Memory for Tests)
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an async SQLite in-memory engine for testing.

    All sessions share one connection (StaticPool), so data committed by an
    orchestrator is visible to the status API within the same test.

    Yields:
        AsyncEngine: SQLAlchemy async engine backed by SQLite in-memory.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    await init_models(engine)

    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def async_session_maker(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    async_session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Provide a database session for one test.

    Orchestrators commit, so isolation comes from the per-test in-memory
    database rather than from a rolled back transaction.

    Yields:
        AsyncSession: Database session.
    """
    async with async_session_maker() as session:
        yield session


# =============================================================================
# HTTP CLIENT FIXTURES
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client for testing the status API.

    Overrides the database dependency to use the test session.

    Yields:
        AsyncClient: HTTP client configured for testing.

    Example:
        async def test_health(async_client):
            response = await async_client.get("/health")
            assert response.status_code == 200
    """
    from flowdrop.db.session import get_db

    async def override_get_db() -> AsyncGenerator[AsyncSession]:
        """Override database dependency to use test session."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    try:
        transport = ASGITransport(app=cast("ASGIApp", app))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


# =============================================================================
# TEST PROCESSORS
# =============================================================================


class PassthroughInput(BaseModel):
    model_config = ConfigDict(extra="allow")


class RecordedOutput(BaseModel):
    """Output of the test processors: a tag and the inputs received."""

    tag: str = ""
    received: dict[str, Any] = {}


class RecordingConfig(ProcessorSettings):
    tag: str = ""
    delay: float = 0.0


class CallLog:
    """Shared record of processor calls, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.calls: dict[str, int] = {}

    def start(self, tag: str) -> int:
        self.events.append(("start", tag))
        self.calls[tag] = self.calls.get(tag, 0) + 1
        return self.calls[tag]

    def end(self, tag: str) -> None:
        self.events.append(("end", tag))

    def index(self, event: str, tag: str) -> int:
        return self.events.index((event, tag))


class RecordingProcessor(BaseProcessor[PassthroughInput, RecordedOutput]):
    """Records its start and end, optionally sleeping ``delay`` seconds."""

    processor_type = "record"
    input_schema = PassthroughInput
    output_schema = RecordedOutput
    config_schema = RecordingConfig

    def __init__(self, log: CallLog) -> None:
        self.log = log

    async def process(
        self, validated_input: PassthroughInput, config: RecordingConfig
    ) -> RecordedOutput:
        self.log.start(config.tag)
        if config.delay:
            await asyncio.sleep(config.delay)
        self.log.end(config.tag)
        return RecordedOutput(tag=config.tag, received=validated_input.model_dump())


class FailingProcessor(RecordingProcessor):
    """Always fails with a non-retryable error."""

    processor_type = "always_fail"

    async def process(
        self, validated_input: PassthroughInput, config: RecordingConfig
    ) -> RecordedOutput:
        self.log.start(config.tag)
        raise ValueError("bad payload")


class UnavailableProcessor(RecordingProcessor):
    """Always fails with a retryable connection error."""

    processor_type = "always_down"

    async def process(
        self, validated_input: PassthroughInput, config: RecordingConfig
    ) -> RecordedOutput:
        self.log.start(config.tag)
        raise ConnectionError("upstream unavailable")


class FlakyProcessor(RecordingProcessor):
    """Fails with a connection error on its first call per tag, then succeeds."""

    processor_type = "flaky"

    async def process(
        self, validated_input: PassthroughInput, config: RecordingConfig
    ) -> RecordedOutput:
        if self.log.start(config.tag) == 1:
            raise ConnectionError("connection reset by peer")
        self.log.end(config.tag)
        return RecordedOutput(tag=config.tag, received=validated_input.model_dump())


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def call_log() -> CallLog:
    """Shared call log of the test processors."""
    return CallLog()


@pytest.fixture
def processor_registry(call_log: CallLog) -> ProcessorRegistry:
    """Fresh registry with the built-in and the test processors."""
    registry = register_builtin_processors(ProcessorRegistry())
    for processor_class in (
        RecordingProcessor,
        FailingProcessor,
        UnavailableProcessor,
        FlakyProcessor,
    ):
        registry.register(
            processor_class.processor_type,
            lambda cls=processor_class: cls(call_log),
        )
    return registry


@pytest.fixture
def monitor() -> ExecutionMonitor:
    """Monitor with a constant memory reading."""
    return ExecutionMonitor(memory_sampler=lambda: 64 * MB)


@pytest.fixture
def metrics_collector() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def node_runtime(
    processor_registry: ProcessorRegistry,
    monitor: ExecutionMonitor,
    metrics_collector: MetricsCollector,
) -> NodeRuntime:
    """Runtime over the test registry, without memory growth."""
    return NodeRuntime(
        registry=processor_registry,
        metrics_collector=metrics_collector,
        monitor=monitor,
        memory_sampler=lambda: 0,
    )


@pytest.fixture
def work_queue() -> InMemoryWorkQueue:
    return InMemoryWorkQueue()


# =============================================================================
# WORKFLOW GRAPH BUILDERS
# =============================================================================


def make_node(
    node_id: str,
    processor_type: str,
    config: dict[str, Any] | None = None,
    gateway: bool = False,
) -> dict[str, Any]:
    """Raw editor node."""
    metadata: dict[str, Any] = {"executor_plugin": processor_type}
    if gateway:
        metadata["type"] = "gateway"
    return {
        "id": node_id,
        "type": "default",
        "position": {"x": 0, "y": 0},
        "data": {"label": node_id.upper(), "config": config or {}, "metadata": metadata},
    }


def make_edge(
    source: str,
    target: str,
    source_port: str | None = None,
    target_port: str | None = None,
) -> dict[str, Any]:
    """Raw editor edge, with handles when ports are given."""
    edge: dict[str, Any] = {
        "id": f"{source}-{source_port or 'out'}-{target}-{target_port or 'in'}",
        "source": source,
        "target": target,
    }
    if source_port:
        edge["sourceHandle"] = f"{source}-output-{source_port}"
    if target_port:
        edge["targetHandle"] = f"{target}-input-{target_port}"
    return edge


@pytest.fixture
def node_factory() -> Callable[..., dict[str, Any]]:
    return make_node


@pytest.fixture
def edge_factory() -> Callable[..., dict[str, Any]]:
    return make_edge


@pytest.fixture
def chain_graph() -> dict[str, Any]:
    """``a -> b -> c``: text input, uppercase transform, text output."""
    return {
        "id": "wf-chain",
        "label": "Chain",
        "nodes": [
            make_node("a", "text_input"),
            make_node("b", "text_transform", {"transformationType": "uppercase"}),
            make_node("c", "text_output"),
        ],
        "edges": [
            make_edge("a", "b", "text", "text"),
            make_edge("b", "c", "text", "text"),
        ],
    }


@pytest.fixture
def diamond_graph() -> dict[str, Any]:
    """``a -> b, a -> c, b -> d, c -> d`` with recording processors."""
    return {
        "id": "wf-diamond",
        "label": "Diamond",
        "nodes": [
            make_node(node_id, "record", {"tag": node_id, "delay": delay})
            for node_id, delay in (("a", 0.0), ("b", 0.05), ("c", 0.01), ("d", 0.0))
        ],
        "edges": [
            make_edge("a", "b"),
            make_edge("a", "c"),
            make_edge("b", "d"),
            make_edge("c", "d"),
        ],
    }


@pytest.fixture
def gateway_graph() -> dict[str, Any]:
    """Input feeding an if/else gateway with a branch per outcome.

    ``gate`` matches the input against ``"yes"``; the ``true`` branch runs
    ``upper -> shout``, the ``false`` branch runs ``lower``.
    """
    return {
        "id": "wf-gateway",
        "label": "Gateway",
        "nodes": [
            make_node("source", "text_input"),
            make_node("gate", "if_else", {"matchText": "yes"}, gateway=True),
            make_node("upper", "text_transform", {"transformationType": "uppercase"}),
            make_node("lower", "text_transform", {"transformationType": "lowercase"}),
            make_node("shout", "text_output"),
        ],
        "edges": [
            make_edge("source", "gate", "text", "text"),
            make_edge("gate", "upper", "true", "trigger"),
            make_edge("gate", "lower", "false", "trigger"),
            make_edge("upper", "shout", "text", "text"),
        ],
    }
