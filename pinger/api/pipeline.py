"""
HTTP request pipeline.

The middleware stack is an explicit ordered list, outermost first:

1. CORS
2. request metrics and access logging
3. uniform handling of uncaught exceptions
"""

import logging
import time
from collections.abc import Callable

from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware

from pinger.config import CorsSettings, Settings
from pinger.constants import ERROR_ID_HEADER
from pinger.errors import RequestPipelineError
from pinger.observability.metrics import MetricsCollector
from pinger.types.api import ExceptionReport

logger = logging.getLogger(__name__)


def cors_middleware(cors: CorsSettings) -> Middleware:
    """
    CORS policy from the ``Cors`` section.

    With any origin and credentials allowed, preflight responses echo the
    request Origin rather than ``*``.
    """
    if "*" in cors.allowed_origins and cors.allow_credentials:
        logger.warning(
            "CORS allows any origin with credentials; restrict Cors.AllowedOrigins in production",
        )
    return Middleware(
        CORSMiddleware,
        allow_origins=cors.allowed_origins,
        allow_methods=cors.allowed_methods,
        allow_headers=cors.allowed_headers,
        allow_credentials=cors.allow_credentials,
    )


def create_metrics_middleware(metrics: MetricsCollector | None) -> Callable:
    """
    Create request metrics middleware.

    Args:
        metrics: The collector; requests are only logged when None.

    Returns:
        The middleware function.
    """

    async def metrics_middleware(request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        if metrics is not None:
            metrics.record_api_request(
                method=request.method,
                endpoint=endpoint,
                status=response.status_code,
                duration_seconds=duration,
            )

        logger.debug(
            "Request served",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        return response

    return metrics_middleware


def render_pipeline_error(
    error: RequestPipelineError,
    report: ExceptionReport,
    include_stack: bool,
) -> Response:
    """
    Log an uncaught request error and build its 500 response.

    The body always names the message and error id; the stack trace is only
    included when error details are exposed.
    """
    original = error.original
    logger.error(
        f"Unhandled exception while serving {report.method} {report.path}",
        exc_info=(type(original), original, original.__traceback__),
        extra={"error_id": error.error_id, "method": report.method, "path": report.path},
    )
    return PlainTextResponse(
        report.render(include_stack),
        status_code=500,
        headers={ERROR_ID_HEADER: error.error_id},
    )


def create_error_middleware(include_stack: bool) -> Callable:
    """
    Create the uncaught exception middleware.

    Args:
        include_stack: Append the stack trace to 500 bodies.

    Returns:
        The middleware function.
    """

    async def error_middleware(request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            report = ExceptionReport.capture(e, request.method, request.url.path)
            error = RequestPipelineError(report.error_id, e)
            return render_pipeline_error(error, report, include_stack)

    return error_middleware


def build_pipeline(settings: Settings, metrics: MetricsCollector | None = None) -> list[Middleware]:
    """
    Build the ordered middleware list, outermost first.

    Args:
        settings: The application settings.
        metrics: Optional metrics collector.
    """
    return [
        cors_middleware(settings.cors),
        Middleware(BaseHTTPMiddleware, dispatch=create_metrics_middleware(metrics)),
        Middleware(
            BaseHTTPMiddleware,
            dispatch=create_error_middleware(settings.expose_error_details),
        ),
    ]
