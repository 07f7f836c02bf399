"""
Relational job queue.

Each operation runs in its own transaction through JobRepository; claims are
made exclusive by FOR UPDATE SKIP LOCKED on PostgreSQL.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from pinger.constants import JobStatus
from pinger.db.connection import Database
from pinger.db.repository import JobRepository
from pinger.queue.base import JobQueueClient, schedule_time
from pinger.queue.cron import next_run, validate_cron
from pinger.types.job import JobDescriptor, JobRecord, QueueStats, RecurringJobRecord

logger = logging.getLogger(__name__)


class SqlJobQueue(JobQueueClient):
    """JobQueueClient over the jobs and recurring_jobs tables."""

    def __init__(self, database: Database, owns_database: bool = False):
        self.database = database
        self._owns_database = owns_database

    async def enqueue(self, descriptor: JobDescriptor) -> UUID:
        due = schedule_time(descriptor)
        async with self.database.session() as session:
            job = await JobRepository(session).create_job(descriptor, scheduled_at=due)
            return job.id

    async def claim(
        self,
        queues: Sequence[str],
        worker_id: str,
        lease_seconds: int,
    ) -> JobRecord | None:
        async with self.database.session() as session:
            jobs = await JobRepository(session).claim_jobs(
                worker_id=worker_id,
                queues=queues,
                lease_seconds=lease_seconds,
                batch_size=1,
            )
            return jobs[0].to_record() if jobs else None

    async def start(self, job_id: UUID, worker_id: str) -> JobRecord | None:
        async with self.database.session() as session:
            job = await JobRepository(session).start_job(job_id, worker_id)
            return job.to_record() if job else None

    async def complete(
        self,
        job_id: UUID,
        worker_id: str,
        result: dict[str, Any] | None = None,
    ) -> bool:
        async with self.database.session() as session:
            job = await JobRepository(session).complete_job(job_id, worker_id, result)
            return job is not None

    async def fail(
        self,
        job_id: UUID,
        worker_id: str,
        error: str,
        retry_at: datetime | None = None,
    ) -> JobStatus | None:
        async with self.database.session() as session:
            job = await JobRepository(session).fail_job(job_id, worker_id, error, retry_at)
            return JobStatus(job.status) if job else None

    async def extend_lease(self, job_id: UUID, worker_id: str, lease_seconds: int) -> bool:
        async with self.database.session() as session:
            return await JobRepository(session).extend_lease(job_id, worker_id, lease_seconds)

    async def requeue_expired(self) -> int:
        async with self.database.session() as session:
            return await JobRepository(session).recover_expired_leases()

    async def requeue(self, job_id: UUID) -> bool:
        async with self.database.session() as session:
            return await JobRepository(session).requeue_job(job_id) is not None

    async def delete(self, job_id: UUID) -> bool:
        async with self.database.session() as session:
            return await JobRepository(session).delete_job(job_id) is not None

    async def get(self, job_id: UUID) -> JobRecord | None:
        async with self.database.session() as session:
            job = await JobRepository(session).get_job(job_id)
            return job.to_record() if job else None

    async def recent(
        self,
        limit: int = 20,
        status: JobStatus | None = None,
    ) -> list[JobRecord]:
        async with self.database.session() as session:
            jobs = await JobRepository(session).list_recent(limit=limit, status=status)
            return [job.to_record() for job in jobs]

    async def stats(self) -> QueueStats:
        async with self.database.session() as session:
            return await JobRepository(session).get_stats()

    async def schedule_recurring(
        self,
        recurring_id: str,
        cron: str,
        descriptor: JobDescriptor,
    ) -> RecurringJobRecord:
        cron = validate_cron(cron)
        async with self.database.session() as session:
            recurring = await JobRepository(session).upsert_recurring(
                recurring_id, cron, descriptor, next_run_at=next_run(cron)
            )
            return recurring.to_record()

    async def remove_recurring(self, recurring_id: str) -> bool:
        async with self.database.session() as session:
            return await JobRepository(session).delete_recurring(recurring_id)

    async def list_recurring(self) -> list[RecurringJobRecord]:
        async with self.database.session() as session:
            return [r.to_record() for r in await JobRepository(session).list_recurring()]

    async def trigger_recurring(self, recurring_id: str) -> UUID | None:
        async with self.database.session() as session:
            repo = JobRepository(session)
            recurring = await repo.get_recurring(recurring_id)
            if recurring is None:
                return None
            job = await repo.create_job(
                recurring.to_record().to_descriptor(), recurring_id=recurring_id
            )
            recurring.last_run_at = job.created_at
            recurring.last_job_id = job.id
            return job.id

    async def enqueue_due_recurring(self, now: datetime | None = None) -> list[UUID]:
        now = now or datetime.utcnow()
        job_ids: list[UUID] = []
        async with self.database.session() as session:
            repo = JobRepository(session)
            for recurring in await repo.lock_due_recurring(now):
                job = await repo.create_job(
                    recurring.to_record().to_descriptor(),
                    recurring_id=recurring.recurring_id,
                )
                recurring.last_run_at = now
                recurring.last_job_id = job.id
                recurring.next_run_at = next_run(recurring.cron, now)
                job_ids.append(job.id)
        if job_ids:
            logger.info(f"Enqueued {len(job_ids)} recurring jobs")
        return job_ids

    async def close(self) -> None:
        if self._owns_database:
            await self.database.dispose()
