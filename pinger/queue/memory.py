"""
In-process job queue.

Holds jobs in a dict guarded by an asyncio.Lock. Used by tests and for
running the host without a database.
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from pinger.constants import ACTIVE_STATUSES, CLAIMABLE_STATUSES, TERMINAL_STATUSES, JobStatus
from pinger.queue.base import JobQueueClient, schedule_time
from pinger.queue.cron import next_run, validate_cron
from pinger.types.job import JobDescriptor, JobRecord, QueueStats, RecurringJobRecord

logger = logging.getLogger(__name__)


class InMemoryJobQueue(JobQueueClient):
    """JobQueueClient backed by process memory."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._jobs: dict[UUID, JobRecord] = {}
        self._recurring: dict[str, RecurringJobRecord] = {}

    def _insert(self, descriptor: JobDescriptor, due: datetime | None, recurring_id: str | None) -> JobRecord:
        now = datetime.utcnow()
        due = due or now
        job = JobRecord(
            id=uuid4(),
            job_type=descriptor.job_type,
            args=dict(descriptor.args),
            queue=descriptor.queue,
            status=JobStatus.SCHEDULED if due > now else JobStatus.ENQUEUED,
            max_attempts=descriptor.max_attempts,
            scheduled_at=due,
            created_at=now,
            updated_at=now,
            recurring_id=recurring_id,
        )
        self._jobs[job.id] = job
        return job

    async def enqueue(self, descriptor: JobDescriptor) -> UUID:
        due = schedule_time(descriptor)
        async with self._lock:
            job = self._insert(descriptor, due, None)
        logger.info(
            "Created new job",
            extra={"job_id": str(job.id), "job_type": job.job_type, "queue": job.queue},
        )
        return job.id

    async def claim(
        self,
        queues: Sequence[str],
        worker_id: str,
        lease_seconds: int,
    ) -> JobRecord | None:
        async with self._lock:
            now = datetime.utcnow()
            candidates = [
                job
                for job in self._jobs.values()
                if job.queue in queues
                and job.status in CLAIMABLE_STATUSES
                and job.scheduled_at is not None
                and job.scheduled_at <= now
            ]
            if not candidates:
                return None
            job = min(candidates, key=lambda j: (j.scheduled_at, j.created_at))
            job.status = JobStatus.CLAIMED
            job.claimed_by = worker_id
            job.lease_expires_at = now + timedelta(seconds=lease_seconds)
            job.updated_at = now
            return replace(job)

    def _owned(self, job_id: UUID, worker_id: str, statuses: Sequence[JobStatus]) -> JobRecord | None:
        job = self._jobs.get(job_id)
        if job is None or job.status not in statuses or job.claimed_by != worker_id:
            return None
        return job

    async def start(self, job_id: UUID, worker_id: str) -> JobRecord | None:
        async with self._lock:
            job = self._owned(job_id, worker_id, [JobStatus.CLAIMED])
            if job is None:
                return None
            job.status = JobStatus.RUNNING
            job.attempt += 1
            job.updated_at = datetime.utcnow()
            return replace(job)

    async def complete(
        self,
        job_id: UUID,
        worker_id: str,
        result: dict[str, Any] | None = None,
    ) -> bool:
        async with self._lock:
            job = self._owned(job_id, worker_id, [JobStatus.RUNNING])
            if job is None:
                return False
            now = datetime.utcnow()
            job.status = JobStatus.SUCCEEDED
            job.completed_at = now
            job.updated_at = now
            job.claimed_by = None
            job.lease_expires_at = None
            job.result = result
            job.last_error = None
            return True

    async def fail(
        self,
        job_id: UUID,
        worker_id: str,
        error: str,
        retry_at: datetime | None = None,
    ) -> JobStatus | None:
        async with self._lock:
            job = self._owned(job_id, worker_id, ACTIVE_STATUSES)
            if job is None:
                logger.warning(
                    "Worker doesn't own job claim",
                    extra={"job_id": str(job_id), "worker_id": worker_id},
                )
                return None
            now = datetime.utcnow()
            job.last_error = error
            job.updated_at = now
            job.claimed_by = None
            job.lease_expires_at = None
            if retry_at is None:
                job.status = JobStatus.FAILED
                job.completed_at = now
            else:
                job.status = JobStatus.SCHEDULED
                job.scheduled_at = retry_at
            return job.status

    async def extend_lease(self, job_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        async with self._lock:
            job = self._owned(job_id, worker_id, ACTIVE_STATUSES)
            if job is None:
                return False
            now = datetime.utcnow()
            job.lease_expires_at = now + timedelta(seconds=lease_seconds)
            job.updated_at = now
            return True

    async def requeue_expired(self) -> int:
        async with self._lock:
            now = datetime.utcnow()
            count = 0
            for job in self._jobs.values():
                if (
                    job.status in ACTIVE_STATUSES
                    and job.lease_expires_at is not None
                    and job.lease_expires_at < now
                ):
                    job.status = JobStatus.ENQUEUED
                    job.claimed_by = None
                    job.lease_expires_at = None
                    job.updated_at = now
                    count += 1
        if count:
            logger.info(f"Recovered {count} jobs with expired leases")
        return count

    async def requeue(self, job_id: UUID) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status not in TERMINAL_STATUSES:
                return False
            now = datetime.utcnow()
            job.status = JobStatus.ENQUEUED
            job.attempt = 0
            job.scheduled_at = now
            job.updated_at = now
            job.completed_at = None
            job.last_error = None
            return True

    async def delete(self, job_id: UUID) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status == JobStatus.DELETED:
                return False
            now = datetime.utcnow()
            job.status = JobStatus.DELETED
            job.claimed_by = None
            job.lease_expires_at = None
            job.completed_at = now
            job.updated_at = now
            return True

    async def get(self, job_id: UUID) -> JobRecord | None:
        async with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    async def recent(
        self,
        limit: int = 20,
        status: JobStatus | None = None,
    ) -> list[JobRecord]:
        async with self._lock:
            jobs = [j for j in self._jobs.values() if status is None or j.status == status]
            jobs.sort(key=lambda j: (j.updated_at, j.created_at), reverse=True)
            return [replace(j) for j in jobs[:limit]]

    async def stats(self) -> QueueStats:
        async with self._lock:
            stats = QueueStats()
            for job in self._jobs.values():
                stats.add(job.queue, job.status)
            return stats

    async def schedule_recurring(
        self,
        recurring_id: str,
        cron: str,
        descriptor: JobDescriptor,
    ) -> RecurringJobRecord:
        cron = validate_cron(cron)
        async with self._lock:
            existing = self._recurring.get(recurring_id)
            record = RecurringJobRecord(
                recurring_id=recurring_id,
                cron=cron,
                job_type=descriptor.job_type,
                args=dict(descriptor.args),
                queue=descriptor.queue,
                max_attempts=descriptor.max_attempts,
                next_run_at=next_run(cron),
                last_run_at=existing.last_run_at if existing else None,
                last_job_id=existing.last_job_id if existing else None,
            )
            if existing:
                record.created_at = existing.created_at
            self._recurring[recurring_id] = record
            return replace(record)

    async def remove_recurring(self, recurring_id: str) -> bool:
        async with self._lock:
            return self._recurring.pop(recurring_id, None) is not None

    async def list_recurring(self) -> list[RecurringJobRecord]:
        async with self._lock:
            return [replace(self._recurring[key]) for key in sorted(self._recurring)]

    async def trigger_recurring(self, recurring_id: str) -> UUID | None:
        async with self._lock:
            recurring = self._recurring.get(recurring_id)
            if recurring is None:
                return None
            job = self._insert(recurring.to_descriptor(), None, recurring_id)
            recurring.last_run_at = job.created_at
            recurring.last_job_id = job.id
            return job.id

    async def enqueue_due_recurring(self, now: datetime | None = None) -> list[UUID]:
        now = now or datetime.utcnow()
        job_ids: list[UUID] = []
        async with self._lock:
            for recurring in sorted(self._recurring.values(), key=lambda r: r.next_run_at):
                if recurring.next_run_at > now:
                    continue
                job = self._insert(recurring.to_descriptor(), None, recurring.recurring_id)
                recurring.last_run_at = now
                recurring.last_job_id = job.id
                recurring.next_run_at = next_run(recurring.cron, now)
                job_ids.append(job.id)
        return job_ids
