"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import CollectorRegistry

from pinger.api.main import create_app
from pinger.bootstrap import AppContext, build_context
from pinger.config import AppSettings, HangfireSettings, RetrySettings, Settings
from pinger.container import Container
from pinger.db.connection import Database
from pinger.observability.metrics import MetricsCollector
from pinger.queue.memory import InMemoryJobQueue
from pinger.queue.sql import SqlJobQueue
from pinger.types.job import JobContext, JobResult

HEALTHY_ENDPOINTS = ["https://app.example.com/health", "https://api.example.com/status"]


class ExplodingJob:
    """Raises from run()."""

    async def run(self, context: JobContext) -> JobResult:
        raise RuntimeError(f"exploded on attempt {context.attempt}")


class NotAJob:
    """Has no run() method."""


class SyncJob:
    """Has a run() method that is not a coroutine."""

    def run(self, context: JobContext) -> JobResult:
        return JobResult(success=True)


def _broken_factory(container: Container):
    raise ValueError("missing dependency")


def register_test_jobs(container: Container) -> None:
    """Job types that exercise failure paths."""
    container.register_job("explode", lambda c: ExplodingJob())
    container.register_job("broken_factory", _broken_factory)
    container.register_job("not_a_job", lambda c: NotAJob())
    container.register_job("sync_job", lambda c: SyncJob())


def ping_responder(request: httpx.Request) -> httpx.Response:
    """Fake endpoints: hosts named 'down' answer 503, 'unreachable' refuse."""
    host = request.url.host
    if host.startswith("unreachable"):
        raise httpx.ConnectError("connection refused", request=request)
    if host.startswith("down"):
        return httpx.Response(503, text="unavailable")
    return httpx.Response(200, json={"status": "ok"})


@pytest.fixture
def register_jobs():
    """Registration hook adding the failure-path job types."""
    return register_test_jobs


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        environment="test",
        log_level="DEBUG",
        log_format="console",
        app_settings=AppSettings(
            connection_string="sqlite+aiosqlite:///:memory:",
            endpoints=HEALTHY_ENDPOINTS,
            ping_timeout_seconds=1.0,
        ),
        hangfire_settings=HangfireSettings(
            server_name="test-server",
            queue_name="default",
            worker_count=2,
            poll_interval_seconds=0.01,
            lease_duration_seconds=5,
            heartbeat_interval_seconds=0.05,
            reaper_interval_seconds=0.05,
            recurring_interval_seconds=0.05,
            shutdown_timeout_seconds=2.0,
            retry=RetrySettings(max_attempts=3, backoff_seconds=0.0),
        ),
    )


@pytest.fixture
def metrics() -> MetricsCollector:
    """Collector with its own registry so tests don't share counters."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def memory_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database]:
    """SQLite database with the job tables created."""
    database = Database.for_tests(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def sql_queue(database: Database) -> SqlJobQueue:
    return SqlJobQueue(database)


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient]:
    """HTTP client answering from ping_responder."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(ping_responder)) as client:
        yield client


@pytest_asyncio.fixture
async def context(
    test_settings: Settings,
    memory_queue: InMemoryJobQueue,
    metrics: MetricsCollector,
    http_client: httpx.AsyncClient,
) -> AsyncGenerator[AppContext]:
    """Application context over the in-memory queue."""
    context = build_context(
        test_settings,
        queue=memory_queue,
        metrics=metrics,
        http_client=http_client,
        configure=register_test_jobs,
    )
    yield context
    await context.server.stop()


@pytest.fixture
def app(context: AppContext) -> FastAPI:
    """Create a FastAPI app for testing, with a route that always fails."""
    app = create_app(context)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
