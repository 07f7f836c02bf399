"""
API request and response type definitions.
"""

import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from pinger.constants import JobStatus
from pinger.types.job import JobRecord, RecurringJobRecord


class EnqueueJobRequest(BaseModel):
    """Request body for triggering a job."""

    job_type: str = Field(..., min_length=1, description="Registered job type key")
    args: dict[str, Any] = Field(default_factory=dict, description="Handler arguments")
    queue: str | None = Field(default=None, description="Target queue; defaults to the server queue")
    delay_seconds: float | None = Field(default=None, ge=0, description="Run after a delay")
    run_at: datetime | None = Field(default=None, description="Run at a given UTC time")
    max_attempts: int | None = Field(default=None, ge=1, le=25, description="Retry limit override")

    @model_validator(mode="after")
    def _one_schedule(self) -> "EnqueueJobRequest":
        if self.delay_seconds is not None and self.run_at is not None:
            raise ValueError("Use either delay_seconds or run_at, not both")
        return self


class EnqueueJobResponse(BaseModel):
    """Response body after enqueueing a job."""

    id: UUID
    job_type: str
    queue: str
    status: JobStatus
    scheduled_at: datetime | None
    message: str = "Job enqueued"


class JobResponse(BaseModel):
    """Full job details response."""

    id: UUID
    job_type: str
    args: dict[str, Any]
    queue: str
    status: JobStatus
    attempt: int
    max_attempts: int | None
    claimed_by: str | None
    lease_expires_at: datetime | None
    scheduled_at: datetime | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    last_error: str | None
    result: dict[str, Any] | None
    recurring_id: str | None

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobResponse":
        return cls(
            id=record.id,
            job_type=record.job_type,
            args=record.args,
            queue=record.queue,
            status=record.status,
            attempt=record.attempt,
            max_attempts=record.max_attempts,
            claimed_by=record.claimed_by,
            lease_expires_at=record.lease_expires_at,
            scheduled_at=record.scheduled_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at,
            last_error=record.last_error,
            result=record.result,
            recurring_id=record.recurring_id,
        )


class JobListResponse(BaseModel):
    """Most recent jobs."""

    jobs: list[JobResponse]
    total: int


class RecurringJobRequest(BaseModel):
    """Request body for creating or replacing a recurring trigger."""

    cron: str = Field(..., description="Cron expression, e.g. '*/5 * * * *'")
    job_type: str = Field(..., min_length=1)
    args: dict[str, Any] = Field(default_factory=dict)
    queue: str | None = None
    max_attempts: int | None = Field(default=None, ge=1, le=25)


class RecurringJobResponse(BaseModel):
    """A recurring trigger."""

    recurring_id: str
    cron: str
    job_type: str
    args: dict[str, Any]
    queue: str
    max_attempts: int | None
    next_run_at: datetime
    last_run_at: datetime | None
    last_job_id: UUID | None

    @classmethod
    def from_record(cls, record: RecurringJobRecord) -> "RecurringJobResponse":
        return cls(
            recurring_id=record.recurring_id,
            cron=record.cron,
            job_type=record.job_type,
            args=record.args,
            queue=record.queue,
            max_attempts=record.max_attempts,
            next_run_at=record.next_run_at,
            last_run_at=record.last_run_at,
            last_job_id=record.last_job_id,
        )


class QueueSummary(BaseModel):
    """Counts for one queue."""

    queue: str
    depth: int
    counts: dict[str, int]


class DashboardResponse(BaseModel):
    """Read-only job server dashboard."""

    server_name: str
    queues: list[QueueSummary]
    running: list[JobResponse]
    recent: list[JobResponse]
    recurring: list[RecurringJobResponse]
    generated_at: datetime


class ManualActionResponse(BaseModel):
    """Response body after a manual retry, delete or trigger."""

    id: str
    status: str
    message: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    timestamp: datetime


@dataclass
class ExceptionReport:
    """
    Captured unhandled request error.
    Logged by the error middleware, then discarded.
    """

    error_id: str
    message: str
    stack_trace: str
    method: str
    path: str

    @classmethod
    def capture(cls, exc: BaseException, method: str, path: str) -> "ExceptionReport":
        return cls(
            error_id=uuid4().hex,
            message=str(exc) or exc.__class__.__name__,
            stack_trace="".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            ),
            method=method,
            path=path,
        )

    def render(self, include_stack: bool) -> str:
        """Plain-text response body."""
        body = f"Error: {self.message} (error id: {self.error_id})"
        if include_stack:
            body = f"{body}\n{self.stack_trace}"
        return body
