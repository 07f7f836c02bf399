"""
SQLAlchemy database models.
Defines the jobs and recurring_jobs tables used as a durable queue.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pinger.constants import DEFAULT_QUEUE, JobStatus
from pinger.types.job import JobRecord, RecurringJobRecord

# JSONB on PostgreSQL, plain JSON elsewhere
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of work in the queue.

    This is the authoritative source of truth for job state.

    Key constraints:
    - a job is claimable only in ENQUEUED or SCHEDULED status with a due scheduled_at
    - claimed_by and lease_expires_at track ownership for at-least-once delivery
    """

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    job_type: Mapped[str] = mapped_column(String(255), nullable=False)
    args: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    queue: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default=DEFAULT_QUEUE,
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            name="job_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobStatus.ENQUEUED,
        index=True,
    )

    # Retry tracking
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Claim management
    claimed_by: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Scheduling
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    recurring_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Outcome
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict | None] = mapped_column(JsonType, nullable=True)

    __table_args__ = (
        # Index for efficient queue polling
        Index("ix_jobs_queue_poll", "queue", "status", "scheduled_at", "created_at"),
        # Index for lease expiry checks
        Index("ix_jobs_lease_expiry", "status", "lease_expires_at"),
    )

    def to_record(self) -> JobRecord:
        """Convert to the backend-neutral read model."""
        return JobRecord(
            id=self.id,
            job_type=self.job_type,
            args=dict(self.args or {}),
            queue=self.queue,
            status=JobStatus(self.status),
            attempt=self.attempt,
            max_attempts=self.max_attempts,
            claimed_by=self.claimed_by,
            lease_expires_at=self.lease_expires_at,
            scheduled_at=self.scheduled_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            completed_at=self.completed_at,
            last_error=self.last_error,
            result=self.result,
            recurring_id=self.recurring_id,
        )

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, type={self.job_type}, queue={self.queue}, "
            f"status={self.status}, attempt={self.attempt})"
        )


class RecurringJob(Base):
    """A cron trigger that enqueues a job descriptor when due."""

    __tablename__ = "recurring_jobs"

    recurring_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    cron: Mapped[str] = mapped_column(String(255), nullable=False)
    job_type: Mapped[str] = mapped_column(String(255), nullable=False)
    args: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    queue: Mapped[str] = mapped_column(String(255), nullable=False, default=DEFAULT_QUEUE)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)

    next_run_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_job_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now(),
    )

    def to_record(self) -> RecurringJobRecord:
        return RecurringJobRecord(
            recurring_id=self.recurring_id,
            cron=self.cron,
            job_type=self.job_type,
            args=dict(self.args or {}),
            queue=self.queue,
            max_attempts=self.max_attempts,
            next_run_at=self.next_run_at,
            last_run_at=self.last_run_at,
            last_job_id=self.last_job_id,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"RecurringJob(id={self.recurring_id}, cron={self.cron!r}, type={self.job_type})"
