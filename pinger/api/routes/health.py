"""
Health check routes.
"""

from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import Response

from pinger import __version__
from pinger.api.dependencies import ContextDep
from pinger.bootstrap import AppContext
from pinger.observability.metrics import get_metrics
from pinger.types.api import HealthResponse

router = APIRouter(tags=["Health"])


async def _storage_status(context: AppContext) -> str:
    if context.database is None:
        return "in-memory"
    return "healthy" if await context.database.ping() else "unhealthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and job storage.",
)
async def health_check(context: ContextDep) -> HealthResponse:
    """
    Perform a health check.

    Checks storage connectivity and returns service status.
    """
    db_status = await _storage_status(context)

    return HealthResponse(
        status="degraded" if db_status == "unhealthy" else "healthy",
        version=__version__,
        database=db_status,
        timestamp=datetime.utcnow(),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(context: ContextDep) -> dict:
    """Kubernetes readiness probe endpoint."""
    return {"ready": await _storage_status(context) != "unhealthy"}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Kubernetes liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics(context: ContextDep) -> Response:
    """Expose Prometheus metrics."""
    metrics_collector = context.metrics or get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
