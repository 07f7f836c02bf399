"""
Type definitions for the job host.
Contains input/output type definitions grouped by module.
"""

from pinger.types.api import (
    DashboardResponse,
    EnqueueJobRequest,
    EnqueueJobResponse,
    ExceptionReport,
    HealthResponse,
    JobListResponse,
    JobResponse,
    ManualActionResponse,
    QueueSummary,
    RecurringJobRequest,
    RecurringJobResponse,
)
from pinger.types.job import (
    DashboardSnapshot,
    JobContext,
    JobDescriptor,
    JobHandler,
    JobOutcome,
    JobRecord,
    JobResult,
    QueueStats,
    RecurringJobRecord,
    Schedule,
)

__all__ = [
    # API types
    "EnqueueJobRequest",
    "EnqueueJobResponse",
    "JobResponse",
    "JobListResponse",
    "RecurringJobRequest",
    "RecurringJobResponse",
    "QueueSummary",
    "DashboardResponse",
    "ManualActionResponse",
    "HealthResponse",
    "ExceptionReport",
    # Job types
    "Schedule",
    "JobDescriptor",
    "JobResult",
    "JobContext",
    "JobHandler",
    "JobOutcome",
    "DashboardSnapshot",
    "JobRecord",
    "RecurringJobRecord",
    "QueueStats",
]
