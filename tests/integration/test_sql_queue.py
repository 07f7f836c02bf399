"""
Integration tests for the SQLAlchemy job queue.

Runs against SQLite through aiosqlite; on PostgreSQL the claim query also
takes row locks with SKIP LOCKED.
"""

import asyncio
from datetime import UTC, datetime, timedelta, timezone

import pytest

from pinger.constants import JobStatus
from pinger.db.connection import Database
from pinger.db.repository import JobRepository
from pinger.queue.sql import SqlJobQueue
from pinger.types.job import JobDescriptor, Schedule

QUEUES = ["default"]


def echo(queue: str = "default", **kwargs) -> JobDescriptor:
    return JobDescriptor(job_type="echo", args={"message": "hi"}, queue=queue, **kwargs)


class TestSqlJobQueue:
    """Tests for SqlJobQueue."""

    @pytest.mark.asyncio
    async def test_full_job_lifecycle_success(self, sql_queue: SqlJobQueue):
        """Test complete job lifecycle: enqueue -> claim -> start -> complete."""
        job_id = await sql_queue.enqueue(echo(max_attempts=4))

        job = await sql_queue.get(job_id)
        assert job.status == JobStatus.ENQUEUED
        assert job.max_attempts == 4

        claimed = await sql_queue.claim(QUEUES, "worker-1", 30)
        assert claimed.id == job_id
        assert claimed.status == JobStatus.CLAIMED

        started = await sql_queue.start(job_id, "worker-1")
        assert started.status == JobStatus.RUNNING
        assert started.attempt == 1

        assert await sql_queue.complete(job_id, "worker-1", {"echo": "hi"}) is True

        finished = await sql_queue.get(job_id)
        assert finished.status == JobStatus.SUCCEEDED
        assert finished.result == {"echo": "hi"}
        assert finished.claimed_by is None

    @pytest.mark.asyncio
    async def test_enqueue_aware_run_at(self, sql_queue: SqlJobQueue):
        """Aware times are stored as naive UTC."""
        run_at = datetime.now(timezone(timedelta(hours=5))) - timedelta(minutes=1)

        job_id = await sql_queue.enqueue(echo(schedule=Schedule.delayed(run_at=run_at)))

        job = await sql_queue.get(job_id)
        assert job.scheduled_at == run_at.astimezone(UTC).replace(tzinfo=None)
        assert (await sql_queue.claim(QUEUES, "worker-1", 30)).id == job_id

    @pytest.mark.asyncio
    async def test_claim_order_and_due_time(self, sql_queue: SqlJobQueue):
        now = datetime.utcnow()
        later = await sql_queue.enqueue(echo(schedule=Schedule.delayed(run_at=now - timedelta(seconds=1))))
        earlier = await sql_queue.enqueue(echo(schedule=Schedule.delayed(run_at=now - timedelta(seconds=30))))
        future = await sql_queue.enqueue(echo(schedule=Schedule.delayed(delay=timedelta(hours=1))))

        first = await sql_queue.claim(QUEUES, "worker-1", 30)
        second = await sql_queue.claim(QUEUES, "worker-1", 30)

        assert [first.id, second.id] == [earlier, later]
        assert await sql_queue.claim(QUEUES, "worker-1", 30) is None
        assert (await sql_queue.get(future)).status == JobStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_claim_respects_queues(self, sql_queue: SqlJobQueue):
        await sql_queue.enqueue(echo(queue="critical"))

        assert await sql_queue.claim(["default"], "worker-1", 30) is None
        assert await sql_queue.claim(["critical"], "worker-1", 30) is not None

    @pytest.mark.asyncio
    async def test_concurrent_claims_are_exclusive(self, sql_queue: SqlJobQueue):
        """Concurrent workers never claim the same job."""
        for _ in range(3):
            await sql_queue.enqueue(echo())

        claims = await asyncio.gather(
            *(sql_queue.claim(QUEUES, f"worker-{i}", 30) for i in range(6))
        )
        claimed_ids = [c.id for c in claims if c is not None]

        assert len(claimed_ids) == 3
        assert len(set(claimed_ids)) == 3

    @pytest.mark.asyncio
    async def test_fail_with_retry_then_terminal(self, sql_queue: SqlJobQueue):
        job_id = await sql_queue.enqueue(echo())
        await sql_queue.claim(QUEUES, "worker-1", 30)
        await sql_queue.start(job_id, "worker-1")

        status = await sql_queue.fail(job_id, "worker-1", "boom", datetime.utcnow() - timedelta(seconds=1))
        assert status == JobStatus.SCHEDULED

        # Retry is due at once, so the job is claimable again
        assert (await sql_queue.claim(QUEUES, "worker-2", 30)).id == job_id
        started = await sql_queue.start(job_id, "worker-2")
        assert started.attempt == 2

        assert await sql_queue.fail(job_id, "worker-1", "stale owner") is None
        assert await sql_queue.fail(job_id, "worker-2", "boom again") == JobStatus.FAILED

        job = await sql_queue.get(job_id)
        assert job.status == JobStatus.FAILED
        assert job.last_error == "boom again"

    @pytest.mark.asyncio
    async def test_lease_expiry_recovery(self, sql_queue: SqlJobQueue):
        job_id = await sql_queue.enqueue(echo())
        await sql_queue.claim(QUEUES, "worker-1", 0)
        await asyncio.sleep(0.01)

        assert await sql_queue.extend_lease(job_id, "worker-2", 30) is False
        assert await sql_queue.requeue_expired() == 1

        job = await sql_queue.get(job_id)
        assert job.status == JobStatus.ENQUEUED
        assert job.lease_expires_at is None

    @pytest.mark.asyncio
    async def test_manual_retry_and_delete(self, sql_queue: SqlJobQueue):
        job_id = await sql_queue.enqueue(echo())

        assert await sql_queue.requeue(job_id) is False
        assert await sql_queue.delete(job_id) is True
        assert await sql_queue.claim(QUEUES, "worker-1", 30) is None

        assert await sql_queue.requeue(job_id) is True
        assert (await sql_queue.claim(QUEUES, "worker-1", 30)).id == job_id

    @pytest.mark.asyncio
    async def test_recent_and_stats(self, sql_queue: SqlJobQueue):
        await sql_queue.enqueue(echo())
        await sql_queue.enqueue(echo(queue="critical"))
        deleted = await sql_queue.enqueue(echo())
        await sql_queue.delete(deleted)

        stats = await sql_queue.stats()

        assert stats.depth("default") == 1
        assert stats.depth("critical") == 1
        assert stats.count("default", JobStatus.DELETED) == 1
        assert len(await sql_queue.recent(limit=2)) == 2
        assert [j.id for j in await sql_queue.recent(status=JobStatus.DELETED)] == [deleted]

    @pytest.mark.asyncio
    async def test_recurring_jobs(self, sql_queue: SqlJobQueue):
        record = await sql_queue.schedule_recurring("ping", "*/5 * * * *", echo())
        assert record.next_run_at > datetime.utcnow()

        replaced = await sql_queue.schedule_recurring("ping", "0 * * * *", echo(queue="critical"))
        assert replaced.cron == "0 * * * *"
        assert replaced.queue == "critical"
        assert len(await sql_queue.list_recurring()) == 1

        due_time = replaced.next_run_at + timedelta(seconds=1)
        (job_id,) = await sql_queue.enqueue_due_recurring(due_time)
        assert await sql_queue.enqueue_due_recurring(due_time) == []

        job = await sql_queue.get(job_id)
        assert job.recurring_id == "ping"
        assert job.queue == "critical"

        (updated,) = await sql_queue.list_recurring()
        assert updated.last_job_id == job_id
        assert updated.next_run_at > due_time

        triggered = await sql_queue.trigger_recurring("ping")
        assert triggered is not None and triggered != job_id

        assert await sql_queue.remove_recurring("ping") is True
        assert await sql_queue.trigger_recurring("ping") is None

    @pytest.mark.asyncio
    async def test_invalid_cron(self, sql_queue: SqlJobQueue):
        with pytest.raises(ValueError):
            await sql_queue.schedule_recurring("bad", "whenever", echo())


class TestJobRepository:
    """Tests for the repository guards used by the queue."""

    @pytest.mark.asyncio
    async def test_claim_batch(self, database: Database):
        async with database.session() as session:
            repo = JobRepository(session)
            for _ in range(3):
                await repo.create_job(echo())

        async with database.session() as session:
            jobs = await JobRepository(session).claim_jobs("worker-1", QUEUES, 30, batch_size=2)

        assert len(jobs) == 2
        assert all(job.claimed_by == "worker-1" for job in jobs)

    @pytest.mark.asyncio
    async def test_start_requires_claim(self, database: Database):
        async with database.session() as session:
            job = await JobRepository(session).create_job(echo())

        async with database.session() as session:
            assert await JobRepository(session).start_job(job.id, "worker-1") is None

    @pytest.mark.asyncio
    async def test_database_ping(self, database: Database):
        assert await database.ping() is True
