"""
Built-in job handlers.

Job handlers must be idempotent - they may be executed multiple times
for the same job in case of worker crashes or lease expiry.

Handlers are plain classes with an async ``run(context)`` method. They are
registered in the composition root by job type and built by the activator,
so their collaborators (HTTP client, settings) come from the container.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from pinger.config import Settings
from pinger.constants import (
    JOB_TYPE_ECHO,
    JOB_TYPE_FAILING,
    JOB_TYPE_PING_ENDPOINTS,
    JOB_TYPE_PING_URL,
    JOB_TYPE_SLEEP,
    SERVICE_HTTP_CLIENT,
    SERVICE_SETTINGS,
)
from pinger.container import Container
from pinger.types.job import JobContext, JobResult

logger = logging.getLogger(__name__)

# Built-in handler registry: job type -> handler class
_handlers: dict[str, type["BaseJob"]] = {}


def register_handler(job_type: str) -> Callable[[type["BaseJob"]], type["BaseJob"]]:
    """
    Decorator to declare a built-in job handler.

    Args:
        job_type: The job type this handler processes.

    Example:
        @register_handler("send_report")
        class SendReportJob(BaseJob):
            async def run(self, context: JobContext) -> JobResult:
                ...
    """
    def decorator(handler: type["BaseJob"]) -> type["BaseJob"]:
        _handlers[job_type] = handler
        return handler
    return decorator


def list_handlers() -> list[str]:
    """List all built-in job types."""
    return sorted(_handlers)


def register_builtin_jobs(container: Container) -> None:
    """Register every built-in handler in the composition root."""
    for job_type, handler in _handlers.items():
        container.register_job(job_type, handler.from_container)
        logger.info(f"Registered handler for job type: {job_type}")


class BaseJob:
    """Base class for built-in handlers."""

    @classmethod
    def from_container(cls, container: Container) -> "BaseJob":
        return cls()

    async def run(self, context: JobContext) -> JobResult:
        raise NotImplementedError


@register_handler(JOB_TYPE_ECHO)
class EchoJob(BaseJob):
    """Returns its arguments as output."""

    async def run(self, context: JobContext) -> JobResult:
        logger.info(
            "Echo job executing",
            extra={"job_id": str(context.job_id), "attempt": context.attempt},
        )
        return JobResult(success=True, output={"echo": context.args})


@register_handler(JOB_TYPE_SLEEP)
class SleepJob(BaseJob):
    """
    Sleeps for ``duration_seconds``.

    Useful for exercising lease extension and graceful shutdown.
    """

    async def run(self, context: JobContext) -> JobResult:
        duration = float(context.args.get("duration_seconds", 1))
        await asyncio.sleep(duration)
        return JobResult(success=True, output={"slept_for": duration})


@register_handler(JOB_TYPE_FAILING)
class FailingJob(BaseJob):
    """Always fails - for exercising the retry policy."""

    async def run(self, context: JobContext) -> JobResult:
        logger.info(
            "Failing job executing (will fail)",
            extra={"job_id": str(context.job_id), "attempt": context.attempt},
        )
        return JobResult(
            success=False,
            error=f"Intentional failure on attempt {context.attempt}",
        )


async def ping(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    timeout: float = 10.0,
    expected_status: int | None = None,
) -> dict[str, Any]:
    """
    Request a URL once and describe the outcome.

    Transport errors are reported in the result rather than raised.
    """
    started = time.perf_counter()
    try:
        response = await client.request(method, url, timeout=timeout)
    except httpx.HTTPError as e:
        return {
            "url": url,
            "ok": False,
            "status_code": None,
            "error": f"{e.__class__.__name__}: {e}",
            "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    if expected_status is None:
        ok = response.is_success
    else:
        ok = response.status_code == expected_status

    return {
        "url": url,
        "ok": ok,
        "status_code": response.status_code,
        "error": None if ok else f"HTTP {response.status_code}",
        "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
    }


@register_handler(JOB_TYPE_PING_URL)
class PingUrlJob(BaseJob):
    """
    Ping a single URL.

    Args expected:
    - url: The URL to request
    - method: HTTP method, GET by default
    - expected_status: Status code counted as healthy; any 2xx when omitted
    """

    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0):
        self.client = client
        self.timeout = timeout

    @classmethod
    def from_container(cls, container: Container) -> "PingUrlJob":
        settings: Settings = container.resolve(SERVICE_SETTINGS)
        return cls(
            container.resolve(SERVICE_HTTP_CLIENT),
            timeout=settings.app_settings.ping_timeout_seconds,
        )

    async def run(self, context: JobContext) -> JobResult:
        url = context.args.get("url")
        if not url:
            return JobResult(success=False, error="Missing 'url' in args")

        outcome = await ping(
            self.client,
            url,
            method=str(context.args.get("method", "GET")).upper(),
            timeout=self.timeout,
            expected_status=context.args.get("expected_status"),
        )

        logger.info(
            "Pinged endpoint",
            extra={"job_id": str(context.job_id), "url": url, "ok": outcome["ok"]},
        )
        return JobResult(success=outcome["ok"], output=outcome, error=outcome["error"])


@register_handler(JOB_TYPE_PING_ENDPOINTS)
class PingEndpointsJob(BaseJob):
    """
    Ping every configured endpoint concurrently.

    ``args.endpoints`` overrides ``AppSettings.Endpoints``. The job fails when
    any endpoint is unhealthy, so the retry policy applies to the whole sweep.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoints: list[str],
        timeout: float = 10.0,
    ):
        self.client = client
        self.endpoints = endpoints
        self.timeout = timeout

    @classmethod
    def from_container(cls, container: Container) -> "PingEndpointsJob":
        settings: Settings = container.resolve(SERVICE_SETTINGS)
        return cls(
            container.resolve(SERVICE_HTTP_CLIENT),
            endpoints=list(settings.app_settings.endpoints),
            timeout=settings.app_settings.ping_timeout_seconds,
        )

    async def run(self, context: JobContext) -> JobResult:
        endpoints = context.args.get("endpoints") or self.endpoints
        if not endpoints:
            return JobResult(success=True, output={"results": [], "healthy": 0, "total": 0})

        results = await asyncio.gather(
            *(ping(self.client, url, timeout=self.timeout) for url in endpoints)
        )
        unhealthy = [r["url"] for r in results if not r["ok"]]

        if unhealthy:
            logger.warning(
                "Unhealthy endpoints",
                extra={"job_id": str(context.job_id), "endpoints": unhealthy},
            )

        return JobResult(
            success=not unhealthy,
            output={
                "results": list(results),
                "healthy": len(results) - len(unhealthy),
                "total": len(results),
            },
            error=f"Unhealthy endpoints: {', '.join(unhealthy)}" if unhealthy else None,
        )
