"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from pinger import __version__
from pinger.api.pipeline import build_pipeline
from pinger.api.routes import dashboard_router, health_router, jobs_router, recurring_router
from pinger.bootstrap import AppContext, build_context, setup_observability
from pinger.config import get_settings
from pinger.observability.tracing import instrument_fastapi

logger = logging.getLogger(__name__)


def create_lifespan(context: AppContext, owns_context: bool):
    """
    Create the application lifespan.

    Starts the job server in process when AppSettings.RunWorkerInProcess is
    on, and stops it on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await context.prepare()

        run_worker = context.settings.app_settings.run_worker_in_process
        if run_worker:
            await context.server.start()

        logger.info("Application started", extra={"worker_in_process": run_worker})

        yield

        await context.server.stop()
        if owns_context:
            await context.close()
        logger.info("Application shutdown")

    return lifespan


def create_app(context: AppContext, owns_context: bool = False) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: The wired application context.
        owns_context: Close the context when the app shuts down.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Webapp Pinger",
        description="Job-processing host with a manual trigger API and a job dashboard",
        version=__version__,
        lifespan=create_lifespan(context, owns_context),
        middleware=build_pipeline(context.settings, context.metrics),
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.context = context

    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(recurring_router)
    app.include_router(dashboard_router)

    return app


def build_app() -> FastAPI:
    """Build the production app from the process settings."""
    settings = get_settings()
    setup_observability(settings)

    app = create_app(build_context(settings), owns_context=True)

    # Instrument with OpenTelemetry
    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "pinger.api.main:build_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
