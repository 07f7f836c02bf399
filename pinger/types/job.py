"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from pinger.constants import (
    ACTIVE_STATUSES,
    CLAIMABLE_STATUSES,
    DEFAULT_QUEUE,
    JobStatus,
    ScheduleKind,
)


def to_naive_utc(value: datetime) -> datetime:
    """Stored times are naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class Schedule(BaseModel):
    """
    When a job descriptor runs.

    - immediate: eligible as soon as it is enqueued
    - delayed: eligible once run_at has passed
    - recurring: enqueued by a cron trigger
    """

    kind: ScheduleKind = ScheduleKind.IMMEDIATE
    run_at: datetime | None = None
    cron: str | None = None

    @field_validator("run_at")
    @classmethod
    def _naive_utc(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _check_kind(self) -> "Schedule":
        if self.kind == ScheduleKind.DELAYED and self.run_at is None:
            raise ValueError("delayed schedule requires run_at")
        if self.kind == ScheduleKind.RECURRING and not self.cron:
            raise ValueError("recurring schedule requires cron")
        return self

    @classmethod
    def immediate(cls) -> "Schedule":
        return cls()

    @classmethod
    def delayed(
        cls,
        run_at: datetime | None = None,
        delay: timedelta | None = None,
    ) -> "Schedule":
        """Create a delayed schedule from an absolute time or a delay."""
        if run_at is None:
            run_at = datetime.utcnow() + (delay or timedelta())
        return cls(kind=ScheduleKind.DELAYED, run_at=run_at)

    @classmethod
    def recurring(cls, cron: str) -> "Schedule":
        return cls(kind=ScheduleKind.RECURRING, cron=cron)


class JobDescriptor(BaseModel):
    """
    Identifies a unit of work.

    job_type is the stable key the activator resolves; args are handed to
    the handler unchanged.
    """

    job_type: str = Field(..., min_length=1)
    args: dict[str, Any] = Field(default_factory=dict)
    queue: str = DEFAULT_QUEUE
    schedule: Schedule = Field(default_factory=Schedule)
    max_attempts: int | None = Field(default=None, ge=1, le=25)


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float | None = None


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    """

    job_id: UUID
    job_type: str
    args: dict[str, Any]
    queue: str
    attempt: int
    max_attempts: int
    worker_id: str
    lease_expires_at: datetime | None = None

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last retry attempt."""
        return self.attempt >= self.max_attempts

    @property
    def remaining_attempts(self) -> int:
        """Get remaining retry attempts."""
        return max(0, self.max_attempts - self.attempt)


@runtime_checkable
class JobHandler(Protocol):
    """Capability every activated job instance provides."""

    async def run(self, context: JobContext) -> JobResult | dict[str, Any] | None:
        ...


@dataclass
class JobRecord:
    """
    Read model of a stored job.
    Returned by every JobQueueClient implementation.
    """

    id: UUID
    job_type: str
    args: dict[str, Any]
    queue: str
    status: JobStatus
    attempt: int = 0
    max_attempts: int | None = None
    claimed_by: str | None = None
    lease_expires_at: datetime | None = None
    scheduled_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
    last_error: str | None = None
    result: dict[str, Any] | None = None
    recurring_id: str | None = None

    @property
    def is_claimable(self) -> bool:
        return self.status in CLAIMABLE_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass
class RecurringJobRecord:
    """A cron trigger that periodically enqueues a descriptor."""

    recurring_id: str
    cron: str
    job_type: str
    args: dict[str, Any]
    queue: str
    next_run_at: datetime
    max_attempts: int | None = None
    last_run_at: datetime | None = None
    last_job_id: UUID | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_descriptor(self) -> JobDescriptor:
        """Build the descriptor enqueued on each trigger."""
        return JobDescriptor(
            job_type=self.job_type,
            args=dict(self.args),
            queue=self.queue,
            max_attempts=self.max_attempts,
        )


@dataclass
class QueueStats:
    """Job counts per queue and status."""

    counts: dict[str, dict[str, int]] = field(default_factory=dict)

    def count(self, queue: str, status: JobStatus) -> int:
        return self.counts.get(queue, {}).get(status.value, 0)

    def depth(self, queue: str) -> int:
        """Jobs waiting to be claimed on a queue."""
        return sum(self.count(queue, status) for status in CLAIMABLE_STATUSES)

    def add(self, queue: str, status: JobStatus, amount: int = 1) -> None:
        by_status = self.counts.setdefault(queue, {})
        by_status[status.value] = by_status.get(status.value, 0) + amount


@dataclass
class JobOutcome:
    """What one claim cycle of the job server did."""

    job_id: UUID
    job_type: str
    status: JobStatus
    attempt: int
    error: str | None = None
    duration_ms: float = 0.0
    recorded: bool = True

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCEEDED


@dataclass
class DashboardSnapshot:
    """Read-only view of the queues, running jobs, history and triggers."""

    server_name: str
    queues: list[str]
    stats: QueueStats
    running: list[JobRecord]
    recent: list[JobRecord]
    recurring: list[RecurringJobRecord]
    generated_at: datetime = field(default_factory=datetime.utcnow)
