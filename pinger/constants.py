"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - ENQUEUED -> CLAIMED (claim acquired)
    - SCHEDULED -> CLAIMED (delayed job became due and was claimed)
    - CLAIMED -> RUNNING (execution started)
    - RUNNING -> SUCCEEDED (success)
    - RUNNING -> SCHEDULED (retry with backoff)
    - RUNNING -> FAILED (retries exhausted or activation failed)
    - CLAIMED/RUNNING -> ENQUEUED (lease expired - crash recovery)
    - any non-terminal -> DELETED (manual delete)
    - FAILED/DELETED -> ENQUEUED (manual retry)
    """

    ENQUEUED = "enqueued"
    SCHEDULED = "scheduled"
    CLAIMED = "claimed"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DELETED = "deleted"


class ScheduleKind(StrEnum):
    """How a job descriptor is scheduled."""

    IMMEDIATE = "immediate"
    DELAYED = "delayed"
    RECURRING = "recurring"


# States a job can be claimed from
CLAIMABLE_STATUSES: tuple[JobStatus, ...] = (JobStatus.ENQUEUED, JobStatus.SCHEDULED)

# States owned by a worker
ACTIVE_STATUSES: tuple[JobStatus, ...] = (JobStatus.CLAIMED, JobStatus.RUNNING)

TERMINAL_STATUSES: tuple[JobStatus, ...] = (
    JobStatus.SUCCEEDED,
    JobStatus.FAILED,
    JobStatus.DELETED,
)

# Default values
DEFAULT_QUEUE = "default"
DEFAULT_SERVER_NAME = "pinger-server"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_LEASE_DURATION_SECONDS = 30
DEFAULT_ENVIRONMENT = "production"
DEVELOPMENT_ENVIRONMENT = "dev"

# Configuration files
BASE_CONFIG_FILE = "appsettings.json"
ENVIRONMENT_CONFIG_FILE = "appsettings.{environment}.json"
ENVIRONMENT_NAME_VAR = "APP_ENVIRONMENT"
CONFIG_PATH_VAR = "APP_CONFIG_PATH"

# API constants
API_V1_PREFIX = "/v1"
DASHBOARD_PREFIX = "/dashboard"
ERROR_ID_HEADER = "X-Error-Id"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_LEASE_EXPIRED = "lease_expired_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_CLAIM_JOB = "claim_job"
SPAN_ACTIVATE_JOB = "activate_job"
SPAN_EXECUTE_JOB = "execute_job"

# Built-in job types
JOB_TYPE_ECHO = "echo"
JOB_TYPE_PING_URL = "ping_url"
JOB_TYPE_PING_ENDPOINTS = "ping_endpoints"
JOB_TYPE_SLEEP = "sleep"
JOB_TYPE_FAILING = "failing_job"

# Container service keys
SERVICE_SETTINGS = "settings"
SERVICE_HTTP_CLIENT = "http_client"
