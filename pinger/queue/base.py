"""
Job queue client contract.

The storage backend owns claim exclusivity: once claim() hands a job to one
worker, no other worker can claim it until it is released, completed, failed
or its lease expires.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from pinger.constants import JobStatus, ScheduleKind
from pinger.types.job import JobDescriptor, JobRecord, QueueStats, RecurringJobRecord


class JobQueueClient(ABC):
    """Durable queue of job descriptors."""

    @abstractmethod
    async def enqueue(self, descriptor: JobDescriptor) -> UUID:
        """
        Store a descriptor for execution.

        Immediate descriptors are claimable at once; delayed ones once their
        run_at has passed.

        Raises:
            ValueError: For recurring descriptors; use schedule_recurring.
        """

    @abstractmethod
    async def claim(
        self,
        queues: Sequence[str],
        worker_id: str,
        lease_seconds: int,
    ) -> JobRecord | None:
        """Atomically claim the next due job from the given queues."""

    @abstractmethod
    async def start(self, job_id: UUID, worker_id: str) -> JobRecord | None:
        """Move a claimed job to running and count the attempt."""

    @abstractmethod
    async def complete(
        self,
        job_id: UUID,
        worker_id: str,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Record success. False if the worker no longer owns the job."""

    @abstractmethod
    async def fail(
        self,
        job_id: UUID,
        worker_id: str,
        error: str,
        retry_at: datetime | None = None,
    ) -> JobStatus | None:
        """
        Record a failed attempt.

        Returns:
            The resulting status (SCHEDULED when retried, FAILED otherwise),
            or None if the worker no longer owns the job.
        """

    @abstractmethod
    async def extend_lease(self, job_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        """Heartbeat for a running job."""

    @abstractmethod
    async def requeue_expired(self) -> int:
        """Return jobs with lapsed leases to the queue."""

    @abstractmethod
    async def requeue(self, job_id: UUID) -> bool:
        """Manual retry of a finished job."""

    @abstractmethod
    async def delete(self, job_id: UUID) -> bool:
        """Manual delete; the job is never claimed afterwards."""

    @abstractmethod
    async def get(self, job_id: UUID) -> JobRecord | None:
        ...

    @abstractmethod
    async def recent(
        self,
        limit: int = 20,
        status: JobStatus | None = None,
    ) -> list[JobRecord]:
        """Most recently updated jobs, newest first."""

    @abstractmethod
    async def stats(self) -> QueueStats:
        ...

    @abstractmethod
    async def schedule_recurring(
        self,
        recurring_id: str,
        cron: str,
        descriptor: JobDescriptor,
    ) -> RecurringJobRecord:
        """
        Create or replace a recurring trigger.

        Raises:
            ValueError: If the cron expression is invalid.
        """

    @abstractmethod
    async def remove_recurring(self, recurring_id: str) -> bool:
        ...

    @abstractmethod
    async def list_recurring(self) -> list[RecurringJobRecord]:
        ...

    @abstractmethod
    async def trigger_recurring(self, recurring_id: str) -> UUID | None:
        """Enqueue a recurring job now without changing its schedule."""

    @abstractmethod
    async def enqueue_due_recurring(self, now: datetime | None = None) -> list[UUID]:
        """Enqueue every due recurring trigger and advance its next run."""

    async def close(self) -> None:
        """Release backend resources."""


def schedule_time(descriptor: JobDescriptor) -> datetime | None:
    """
    Earliest execution time of a descriptor; None means now.

    Raises:
        ValueError: For recurring descriptors.
    """
    if descriptor.schedule.kind == ScheduleKind.RECURRING:
        raise ValueError("Recurring descriptors are registered with schedule_recurring")
    if descriptor.schedule.kind == ScheduleKind.DELAYED:
        return descriptor.schedule.run_at
    return None
