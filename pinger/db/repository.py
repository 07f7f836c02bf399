"""
Job repository for database operations.
Implements the core data access patterns for the durable job queue.
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pinger.constants import ACTIVE_STATUSES, CLAIMABLE_STATUSES, JobStatus
from pinger.db.models import Job, RecurringJob
from pinger.types.job import JobDescriptor, QueueStats

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for job database operations.

    Implements atomic operations for:
    - Job enqueueing
    - Claim acquisition with FOR UPDATE SKIP LOCKED
    - Status transitions guarded by the claiming worker
    - Lease expiry recovery
    - Recurring trigger bookkeeping
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def create_job(
        self,
        descriptor: JobDescriptor,
        scheduled_at: datetime | None = None,
        recurring_id: str | None = None,
    ) -> Job:
        """
        Insert a new job.

        Args:
            descriptor: What to run and where.
            scheduled_at: Earliest execution time; now when omitted.
            recurring_id: The recurring trigger that produced the job, if any.

        Returns:
            The persisted Job.
        """
        now = datetime.utcnow()
        due = scheduled_at or now
        job = Job(
            job_type=descriptor.job_type,
            args=descriptor.args,
            queue=descriptor.queue,
            max_attempts=descriptor.max_attempts,
            status=JobStatus.SCHEDULED if due > now else JobStatus.ENQUEUED,
            scheduled_at=due,
            recurring_id=recurring_id,
            attempt=0,
            created_at=now,
            updated_at=now,
        )
        self._session.add(job)
        await self._session.flush()

        logger.info(
            "Created new job",
            extra={"job_id": str(job.id), "job_type": job.job_type, "queue": job.queue},
        )
        return job

    async def get_job(self, job_id: UUID) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job UUID.

        Returns:
            The Job or None if not found.
        """
        stmt = select(Job).where(Job.id == job_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_recent(
        self,
        limit: int = 20,
        status: JobStatus | None = None,
        queue: str | None = None,
    ) -> Sequence[Job]:
        """
        List the most recently updated jobs.

        Args:
            limit: Maximum number of jobs to return.
            status: Optional status filter.
            queue: Optional queue filter.

        Returns:
            Jobs, newest first.
        """
        stmt = select(Job).order_by(Job.updated_at.desc(), Job.created_at.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(Job.status == status)
        if queue is not None:
            stmt = stmt.where(Job.queue == queue)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def claim_jobs(
        self,
        worker_id: str,
        queues: Sequence[str],
        lease_seconds: int,
        batch_size: int = 1,
    ) -> Sequence[Job]:
        """
        Claim due jobs using FOR UPDATE SKIP LOCKED.

        This is the critical path for job distribution. Candidate rows are
        locked and skipped by concurrent claimers, and the UPDATE re-checks
        the status so a job is never claimed twice.

        Args:
            worker_id: The worker identifier.
            queues: Queue names to claim from.
            lease_seconds: Lease duration.
            batch_size: Number of jobs to claim.

        Returns:
            List of claimed jobs.
        """
        now = datetime.utcnow()

        candidates = (
            select(Job.id)
            .where(
                Job.queue.in_(list(queues)),
                Job.status.in_(CLAIMABLE_STATUSES),
                Job.scheduled_at <= now,
            )
            .order_by(Job.scheduled_at.asc(), Job.created_at.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )

        stmt = (
            update(Job)
            .where(
                Job.id.in_(candidates),
                Job.status.in_(CLAIMABLE_STATUSES),
            )
            .values(
                status=JobStatus.CLAIMED,
                claimed_by=worker_id,
                lease_expires_at=now + timedelta(seconds=lease_seconds),
                updated_at=now,
            )
            .returning(Job)
        )

        result = await self._session.execute(stmt)
        jobs = result.scalars().all()

        if jobs:
            logger.info(
                f"Claimed {len(jobs)} jobs",
                extra={"worker_id": worker_id, "job_count": len(jobs)},
            )

        return jobs

    async def start_job(self, job_id: UUID, worker_id: str) -> Job | None:
        """
        Transition job from CLAIMED to RUNNING.

        Args:
            job_id: The job UUID.
            worker_id: The worker identifier (must match the claim owner).

        Returns:
            Updated Job or None if transition failed.
        """
        stmt = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.status == JobStatus.CLAIMED,
                Job.claimed_by == worker_id,
            )
            .values(
                status=JobStatus.RUNNING,
                attempt=Job.attempt + 1,
                updated_at=datetime.utcnow(),
            )
            .returning(Job)
        )

        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def complete_job(
        self,
        job_id: UUID,
        worker_id: str,
        result: dict[str, Any] | None = None,
    ) -> Job | None:
        """
        Mark job as successfully completed.

        Args:
            job_id: The job UUID.
            worker_id: The worker identifier.
            result: Optional job result data.

        Returns:
            Updated Job or None if transition failed.
        """
        now = datetime.utcnow()
        stmt = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.status == JobStatus.RUNNING,
                Job.claimed_by == worker_id,
            )
            .values(
                status=JobStatus.SUCCEEDED,
                completed_at=now,
                updated_at=now,
                claimed_by=None,
                lease_expires_at=None,
                result=result,
                last_error=None,
            )
            .returning(Job)
        )

        result_obj = await self._session.execute(stmt)
        return result_obj.scalar_one_or_none()

    async def fail_job(
        self,
        job_id: UUID,
        worker_id: str,
        error: str,
        retry_at: datetime | None = None,
    ) -> Job | None:
        """
        Record a failed attempt. Either reschedule or mark terminally failed.

        Args:
            job_id: The job UUID.
            worker_id: The worker identifier.
            error: Error message.
            retry_at: When to retry; None makes the failure terminal.

        Returns:
            Updated Job or None if the worker no longer owns the job.
        """
        now = datetime.utcnow()

        if retry_at is None:
            values: dict[str, Any] = {
                "status": JobStatus.FAILED,
                "completed_at": now,
            }
        else:
            values = {
                "status": JobStatus.SCHEDULED,
                "scheduled_at": retry_at,
            }

        stmt = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.status.in_(ACTIVE_STATUSES),
                Job.claimed_by == worker_id,
            )
            .values(
                last_error=error,
                updated_at=now,
                claimed_by=None,
                lease_expires_at=None,
                **values,
            )
            .returning(Job)
        )

        result = await self._session.execute(stmt)
        job = result.scalar_one_or_none()

        if job is None:
            logger.warning(
                "Worker doesn't own job claim",
                extra={"job_id": str(job_id), "worker_id": worker_id},
            )

        return job

    async def requeue_job(self, job_id: UUID) -> Job | None:
        """
        Manually put a finished job back on its queue.

        Args:
            job_id: The job UUID.

        Returns:
            Updated Job or None if not found or still active.
        """
        now = datetime.utcnow()
        stmt = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.status.in_([JobStatus.FAILED, JobStatus.DELETED, JobStatus.SUCCEEDED]),
            )
            .values(
                status=JobStatus.ENQUEUED,
                attempt=0,
                scheduled_at=now,
                updated_at=now,
                completed_at=None,
                last_error=None,
            )
            .returning(Job)
        )

        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_job(self, job_id: UUID) -> Job | None:
        """
        Mark a job as deleted. Deleted jobs are never claimed.

        Returns:
            Updated Job or None if not found or already deleted.
        """
        now = datetime.utcnow()
        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status != JobStatus.DELETED)
            .values(
                status=JobStatus.DELETED,
                claimed_by=None,
                lease_expires_at=None,
                completed_at=now,
                updated_at=now,
            )
            .returning(Job)
        )

        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def recover_expired_leases(self) -> int:
        """
        Recover jobs with expired leases.

        Claimed or running jobs whose lease lapsed belong to a crashed or
        stalled worker; they go back to ENQUEUED.

        Returns:
            Number of recovered jobs.
        """
        now = datetime.utcnow()

        stmt = (
            update(Job)
            .where(
                Job.status.in_(ACTIVE_STATUSES),
                Job.lease_expires_at < now,
            )
            .values(
                status=JobStatus.ENQUEUED,
                claimed_by=None,
                lease_expires_at=None,
                updated_at=now,
            )
        )

        result = await self._session.execute(stmt)
        count = result.rowcount

        if count > 0:
            logger.info(f"Recovered {count} jobs with expired leases")

        return count

    async def extend_lease(
        self,
        job_id: UUID,
        worker_id: str,
        extension_seconds: int,
    ) -> bool:
        """
        Extend the lease on a job (heartbeat).

        Returns:
            True if lease was extended, False otherwise.
        """
        now = datetime.utcnow()

        stmt = (
            update(Job)
            .where(
                Job.id == job_id,
                Job.claimed_by == worker_id,
                Job.status.in_(ACTIVE_STATUSES),
            )
            .values(
                lease_expires_at=now + timedelta(seconds=extension_seconds),
                updated_at=now,
            )
        )

        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def get_stats(self) -> QueueStats:
        """
        Get job counts by queue and status.

        Returns:
            QueueStats for every queue with at least one job.
        """
        stmt = select(Job.queue, Job.status, func.count()).group_by(Job.queue, Job.status)
        result = await self._session.execute(stmt)

        stats = QueueStats()
        for queue, status, count in result.all():
            stats.add(queue, JobStatus(status), count)
        return stats

    # ------------------------------------------------------------------
    # Recurring triggers
    # ------------------------------------------------------------------

    async def upsert_recurring(
        self,
        recurring_id: str,
        cron: str,
        descriptor: JobDescriptor,
        next_run_at: datetime,
    ) -> RecurringJob:
        """Create or replace a recurring trigger."""
        recurring = await self.get_recurring(recurring_id)
        if recurring is None:
            recurring = RecurringJob(recurring_id=recurring_id, created_at=datetime.utcnow())
            self._session.add(recurring)

        recurring.cron = cron
        recurring.job_type = descriptor.job_type
        recurring.args = descriptor.args
        recurring.queue = descriptor.queue
        recurring.max_attempts = descriptor.max_attempts
        recurring.next_run_at = next_run_at

        await self._session.flush()
        return recurring

    async def get_recurring(self, recurring_id: str) -> RecurringJob | None:
        stmt = select(RecurringJob).where(RecurringJob.recurring_id == recurring_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_recurring(self) -> Sequence[RecurringJob]:
        stmt = select(RecurringJob).order_by(RecurringJob.recurring_id)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def delete_recurring(self, recurring_id: str) -> bool:
        stmt = delete(RecurringJob).where(RecurringJob.recurring_id == recurring_id)
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def lock_due_recurring(self, now: datetime) -> Sequence[RecurringJob]:
        """
        Lock recurring triggers that are due.

        Rows locked by another server are skipped, so each trigger fires once
        per due time across servers.
        """
        stmt = (
            select(RecurringJob)
            .where(RecurringJob.next_run_at <= now)
            .order_by(RecurringJob.next_run_at)
            .with_for_update(skip_locked=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()
