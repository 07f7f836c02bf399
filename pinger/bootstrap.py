"""
Process startup.

Builds everything the host needs, strictly in order: settings, logging and
tracing, database and queue, composition root (frozen), activator, job
server. The HTTP app and the standalone worker are both built on top of the
resulting AppContext.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from pinger import __version__
from pinger.activator import ContainerJobActivator, JobActivator
from pinger.config import Settings
from pinger.constants import SERVICE_HTTP_CLIENT, SERVICE_SETTINGS
from pinger.container import Container
from pinger.db.connection import Database
from pinger.observability.logging import setup_logging
from pinger.observability.metrics import MetricsCollector, setup_metrics
from pinger.observability.tracing import instrument_sqlalchemy, setup_tracing
from pinger.queue.base import JobQueueClient
from pinger.queue.sql import SqlJobQueue
from pinger.worker.handlers import register_builtin_jobs
from pinger.worker.server import JobServer

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything built at startup, shared by the API and the job server."""

    settings: Settings
    container: Container
    activator: JobActivator
    queue: JobQueueClient
    server: JobServer
    http_client: httpx.AsyncClient
    metrics: MetricsCollector | None = None
    database: Database | None = None

    async def prepare(self) -> None:
        """Create the job tables when HangfireSettings.PrepareSchema is on."""
        if self.database is not None and self.settings.hangfire_settings.prepare_schema:
            await self.database.create_all()
            logger.info("Job storage schema prepared")

    async def close(self) -> None:
        """Release the HTTP client, the queue and the database."""
        await self.http_client.aclose()
        await self.queue.close()
        if self.database is not None:
            await self.database.dispose()


def setup_observability(settings: Settings) -> None:
    """Configure logging and tracing for the process."""
    setup_logging(settings)
    setup_tracing(settings)
    logger.info(
        "Starting webapp-pinger",
        extra={"version": __version__, "environment": settings.environment},
    )


def build_container(
    settings: Settings,
    http_client: httpx.AsyncClient,
    configure: Callable[[Container], None] | None = None,
) -> Container:
    """
    Build and freeze the composition root.

    Args:
        settings: The settings snapshot, registered as a service.
        http_client: Shared client for the ping jobs.
        configure: Optional extra registrations, applied before freezing.
    """
    container = Container()
    container.register_instance(SERVICE_SETTINGS, settings)
    container.register_instance(SERVICE_HTTP_CLIENT, http_client)
    register_builtin_jobs(container)
    if configure is not None:
        configure(container)
    return container.freeze()


def build_context(
    settings: Settings,
    queue: JobQueueClient | None = None,
    metrics: MetricsCollector | None = None,
    http_client: httpx.AsyncClient | None = None,
    configure: Callable[[Container], None] | None = None,
) -> AppContext:
    """
    Build the application context.

    Args:
        settings: The settings snapshot.
        queue: Job store; a SqlJobQueue over AppSettings.ConnectionString
            when omitted.
        metrics: Metrics collector; the process-wide one when omitted.
        http_client: HTTP client for ping jobs.
        configure: Extra container registrations.

    Returns:
        AppContext: The wired application.
    """
    database = None
    if queue is None:
        database = Database.from_settings(settings)
        instrument_sqlalchemy(database.engine)
        queue = SqlJobQueue(database)

    if metrics is None:
        metrics = setup_metrics()

    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=settings.app_settings.ping_timeout_seconds,
            follow_redirects=True,
        )

    container = build_container(settings, http_client, configure)
    activator = ContainerJobActivator(container)
    server = JobServer(
        queue=queue,
        activator=activator,
        options=settings.hangfire_settings,
        metrics=metrics,
        queues=settings.queues,
    )

    return AppContext(
        settings=settings,
        container=container,
        activator=activator,
        queue=queue,
        server=server,
        http_client=http_client,
        metrics=metrics,
        database=database,
    )
