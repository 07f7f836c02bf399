"""
Job server.

Runs a fixed pool of asyncio workers that claim jobs from the queue, ask the
activator for a handler, execute it and record the outcome. Auxiliary loops
keep leases alive, requeue jobs abandoned by crashed workers and enqueue due
recurring jobs.
"""

import asyncio
import logging
import os
import socket
import time
from collections.abc import Sequence
from typing import Any
from uuid import UUID

from opentelemetry.trace import Status, StatusCode

from pinger.activator import JobActivator
from pinger.config import HangfireSettings
from pinger.constants import (
    SPAN_ACTIVATE_JOB,
    SPAN_CLAIM_JOB,
    SPAN_EXECUTE_JOB,
    JobStatus,
)
from pinger.errors import HandlerExecutionError, ResolutionError, StartupConfigError
from pinger.observability.logging import bind_context, clear_context
from pinger.observability.metrics import MetricsCollector
from pinger.observability.tracing import get_tracer
from pinger.queue.base import JobQueueClient
from pinger.types.job import (
    DashboardSnapshot,
    JobContext,
    JobDescriptor,
    JobOutcome,
    JobRecord,
    JobResult,
)
from pinger.worker.retry import RetryPolicy

logger = logging.getLogger(__name__)


def to_job_result(value: Any) -> JobResult:
    """Normalize a handler return value."""
    if isinstance(value, JobResult):
        return value
    if value is None:
        return JobResult(success=True)
    if isinstance(value, dict):
        return JobResult(success=True, output=value)
    return JobResult(success=True, output={"value": value})


class JobServer:
    """
    Claims and executes queued jobs.

    Features:
    - Exclusive claims with leases
    - Heartbeat to extend leases for long-running jobs
    - Reaper returning expired claims to the queue
    - Recurring triggers
    - Retry with backoff, resolution failures are terminal
    - Graceful shutdown draining in-flight jobs
    """

    def __init__(
        self,
        queue: JobQueueClient,
        activator: JobActivator,
        options: HangfireSettings,
        metrics: MetricsCollector | None = None,
        retry_policy: RetryPolicy | None = None,
        queues: Sequence[str] | None = None,
    ):
        """
        Initialize the server.

        Args:
            queue: The job store.
            activator: Produces handler instances by job type.
            options: Server options (name, worker count, intervals).
            metrics: Optional metrics collector.
            retry_policy: Defaults to the policy in options.retry.
            queues: Queue names to serve; defaults to options.queues.
        """
        self.queue = queue
        self.activator = activator
        self.options = options
        self.metrics = metrics
        self.retry_policy = retry_policy or RetryPolicy.from_settings(options.retry)
        self.queues = list(queues or options.queues)
        self.server_id = f"{options.server_name}:{socket.gethostname()}:{os.getpid()}"

        self._stopping = asyncio.Event()
        self._workers: list[asyncio.Task] = []
        self._auxiliary: list[asyncio.Task] = []
        self._running_jobs: dict[UUID, str] = {}

    @property
    def name(self) -> str:
        return self.options.server_name

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._workers)

    def worker_id(self, index: int) -> str:
        return f"{self.server_id}:{index}"

    # ------------------------------------------------------------------
    # Single claim cycle
    # ------------------------------------------------------------------

    async def process_one(self, worker_id: str | None = None) -> JobOutcome | None:
        """
        Claim and execute at most one job.

        Returns:
            The outcome, or None if no job was due.
        """
        worker_id = worker_id or self.worker_id(0)

        with get_tracer().start_as_current_span(SPAN_CLAIM_JOB):
            claimed = await self.queue.claim(
                self.queues, worker_id, self.options.lease_duration_seconds
            )
        if claimed is None:
            return None

        if self.metrics:
            self.metrics.record_job_claimed(self.name)

        job = await self.queue.start(claimed.id, worker_id)
        if job is None:
            logger.warning(
                "Failed to start job - lease may have expired",
                extra={"job_id": str(claimed.id), "worker_id": worker_id},
            )
            return None

        self._running_jobs[job.id] = worker_id
        bind_context(job_id=str(job.id), job_type=job.job_type, worker_id=worker_id)
        try:
            return await self._execute(job, worker_id)
        finally:
            self._running_jobs.pop(job.id, None)
            clear_context()

    async def _execute(self, job: JobRecord, worker_id: str) -> JobOutcome:
        start_time = time.perf_counter()
        max_attempts = job.max_attempts or self.retry_policy.max_attempts

        with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
            span.set_attribute("job.id", str(job.id))
            span.set_attribute("job.type", job.job_type)
            span.set_attribute("job.queue", job.queue)
            span.set_attribute("job.attempt", job.attempt)

            try:
                with get_tracer().start_as_current_span(SPAN_ACTIVATE_JOB):
                    handler = self.activator.activate(job.job_type)
            except ResolutionError as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(
                    "Job activation failed",
                    extra={"job_id": str(job.id), "job_type": job.job_type, "error": str(e)},
                )
                return await self._record_failure(job, worker_id, str(e), start_time, retry=False)

            context = JobContext(
                job_id=job.id,
                job_type=job.job_type,
                args=job.args,
                queue=job.queue,
                attempt=job.attempt,
                max_attempts=max_attempts,
                worker_id=worker_id,
                lease_expires_at=job.lease_expires_at,
            )

            logger.info(
                "Executing job",
                extra={"job_id": str(job.id), "job_type": job.job_type, "attempt": job.attempt},
            )

            try:
                result = to_job_result(await handler.run(context))
                if not result.success:
                    raise HandlerExecutionError(job.job_type, result.error or "Job reported failure")
            except HandlerExecutionError as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                return await self._record_failure(job, worker_id, str(e), start_time, retry=True)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.exception(
                    "Handler raised exception",
                    extra={"job_id": str(job.id), "job_type": job.job_type},
                )
                error = HandlerExecutionError(job.job_type, f"{e.__class__.__name__}: {e}")
                return await self._record_failure(job, worker_id, str(error), start_time, retry=True)

        duration = time.perf_counter() - start_time
        recorded = await self.queue.complete(job.id, worker_id, result.output)
        if not recorded:
            logger.warning(
                "Job finished after its claim was lost",
                extra={"job_id": str(job.id), "worker_id": worker_id},
            )
        else:
            logger.info(
                "Job completed successfully",
                extra={"job_id": str(job.id), "duration": f"{duration:.2f}s"},
            )

        if self.metrics:
            self.metrics.record_job_completed(job.job_type, JobStatus.SUCCEEDED.value, duration)

        return JobOutcome(
            job_id=job.id,
            job_type=job.job_type,
            status=JobStatus.SUCCEEDED,
            attempt=job.attempt,
            duration_ms=duration * 1000,
            recorded=recorded,
        )

    async def _record_failure(
        self,
        job: JobRecord,
        worker_id: str,
        error: str,
        start_time: float,
        retry: bool,
    ) -> JobOutcome:
        retry_at = None
        if retry:
            retry_at = self.retry_policy.next_retry_at(job.attempt, job.max_attempts)

        status = await self.queue.fail(job.id, worker_id, error, retry_at)
        duration = time.perf_counter() - start_time

        logger.warning(
            "Job failed",
            extra={
                "job_id": str(job.id),
                "error": error,
                "attempt": job.attempt,
                "retry_at": retry_at.isoformat() if retry_at else None,
            },
        )

        outcome_status = JobStatus.SCHEDULED if retry_at else JobStatus.FAILED
        if self.metrics:
            self.metrics.record_job_completed(job.job_type, outcome_status.value, duration)

        return JobOutcome(
            job_id=job.id,
            job_type=job.job_type,
            status=status or outcome_status,
            attempt=job.attempt,
            error=error,
            duration_ms=duration * 1000,
            recorded=status is not None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def register_recurring_jobs(self) -> None:
        """
        Create or replace the recurring triggers declared in options.

        Raises:
            StartupConfigError: If a declared job type is not registered or
                its cron expression is invalid.
        """
        for declared in self.options.recurring_jobs:
            if not self.activator.can_activate(declared.job_type):
                raise StartupConfigError(
                    f"Recurring job '{declared.id}': unknown job type {declared.job_type}"
                )
            descriptor = JobDescriptor(
                job_type=declared.job_type,
                args=declared.args,
                queue=declared.queue or self.queues[0],
                max_attempts=declared.max_attempts,
            )
            try:
                await self.queue.schedule_recurring(declared.id, declared.cron, descriptor)
            except ValueError as e:
                raise StartupConfigError(f"Recurring job '{declared.id}': {e}") from e
            logger.info(
                "Registered recurring job",
                extra={"recurring_id": declared.id, "cron": declared.cron},
            )

    async def start(self) -> None:
        """Register recurring triggers and start the worker and auxiliary loops."""
        if self.is_running:
            return

        await self.register_recurring_jobs()

        self._stopping.clear()
        logger.info(
            "Job server starting",
            extra={
                "server": self.server_id,
                "queues": self.queues,
                "workers": self.options.worker_count,
            },
        )

        self._workers = [
            asyncio.create_task(self._worker_loop(self.worker_id(i)), name=self.worker_id(i))
            for i in range(self.options.worker_count)
        ]
        self._auxiliary = [
            asyncio.create_task(self._heartbeat_loop(), name=f"{self.server_id}:heartbeat"),
            asyncio.create_task(self._reaper_loop(), name=f"{self.server_id}:reaper"),
            asyncio.create_task(self._recurring_loop(), name=f"{self.server_id}:recurring"),
        ]

    async def stop(self) -> None:
        """
        Stop gracefully.

        Workers finish their current job; after shutdown_timeout_seconds they
        are cancelled and the reaper of another server recovers their claims.
        """
        if not self._workers and not self._auxiliary:
            return

        logger.info("Job server stopping", extra={"server": self.server_id})
        self._stopping.set()

        if self._running_jobs:
            logger.info(f"Waiting for {len(self._running_jobs)} jobs to complete")

        if self._workers:
            _, pending = await asyncio.wait(
                self._workers, timeout=self.options.shutdown_timeout_seconds
            )
            for task in pending:
                task.cancel()

        for task in self._auxiliary:
            task.cancel()

        await asyncio.gather(*self._workers, *self._auxiliary, return_exceptions=True)
        self._workers = []
        self._auxiliary = []

        logger.info("Job server stopped", extra={"server": self.server_id})

    async def _sleep(self, seconds: float) -> None:
        """Sleep unless stopping is requested first."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def _worker_loop(self, worker_id: str) -> None:
        while not self._stopping.is_set():
            try:
                outcome = await self.process_one(worker_id)
                if outcome is None:
                    await self._sleep(self.options.poll_interval_seconds)
            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": worker_id},
                )
                await self._sleep(self.options.poll_interval_seconds)

    async def _heartbeat_loop(self) -> None:
        """
        Periodically extend leases on running jobs.

        This prevents jobs from being reclaimed by the reaper
        while they're still being executed.
        """
        while not self._stopping.is_set():
            await self._sleep(self.options.heartbeat_interval_seconds)
            try:
                for job_id, worker_id in list(self._running_jobs.items()):
                    extended = await self.queue.extend_lease(
                        job_id, worker_id, self.options.lease_duration_seconds
                    )
                    if extended:
                        logger.debug("Extended lease", extra={"job_id": str(job_id)})
            except Exception as e:
                logger.exception(f"Error in heartbeat loop: {e}")

    async def reap(self) -> int:
        """
        Requeue jobs whose lease expired and refresh the queue depth gauge.

        Returns:
            Number of requeued jobs.
        """
        count = await self.queue.requeue_expired()
        if self.metrics:
            if count:
                self.metrics.record_lease_expired(count)
            self.metrics.update_queue_depth(await self.queue.stats())
        if count:
            logger.warning(
                f"Requeued {count} jobs with expired leases",
                extra={"server": self.server_id},
            )
        return count

    async def _reaper_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.reap()
            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")
            await self._sleep(self.options.reaper_interval_seconds)

    async def _recurring_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                job_ids = await self.queue.enqueue_due_recurring()
                if job_ids:
                    logger.info(
                        f"Enqueued {len(job_ids)} recurring jobs",
                        extra={"job_ids": [str(j) for j in job_ids]},
                    )
            except Exception as e:
                logger.exception(f"Error in recurring loop: {e}")
            await self._sleep(self.options.recurring_interval_seconds)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    async def dashboard(self, limit: int | None = None) -> DashboardSnapshot:
        """Read-only snapshot of queues, running jobs, history and triggers."""
        limit = limit or self.options.history_limit
        stats = await self.queue.stats()
        return DashboardSnapshot(
            server_name=self.name,
            queues=sorted(set(self.queues) | set(stats.counts)),
            stats=stats,
            running=await self.queue.recent(limit=limit, status=JobStatus.RUNNING),
            recent=await self.queue.recent(limit=limit),
            recurring=await self.queue.list_recurring(),
        )
