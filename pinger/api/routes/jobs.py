"""
Job management routes.
"""

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from pinger.api.dependencies import ActivatorDep, MetricsDep, QueueDep, SettingsDep
from pinger.constants import API_V1_PREFIX, SPAN_ENQUEUE_JOB, JobStatus
from pinger.observability.tracing import get_tracer
from pinger.types.api import (
    EnqueueJobRequest,
    EnqueueJobResponse,
    JobListResponse,
    JobResponse,
)
from pinger.types.job import JobDescriptor, Schedule

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])


def build_schedule(request: EnqueueJobRequest) -> Schedule:
    if request.run_at is not None:
        return Schedule.delayed(run_at=request.run_at)
    if request.delay_seconds:
        return Schedule.delayed(delay=timedelta(seconds=request.delay_seconds))
    return Schedule.immediate()


@router.post(
    "",
    response_model=EnqueueJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Trigger a job",
    description="Enqueue a job of a registered type, now or after a delay.",
)
async def enqueue_job(
    request: EnqueueJobRequest,
    queue: QueueDep,
    activator: ActivatorDep,
    settings: SettingsDep,
    metrics: MetricsDep,
) -> EnqueueJobResponse:
    """
    Enqueue a job.

    Raises:
        HTTPException: 400 if the job type is not registered.
    """
    if not activator.can_activate(request.job_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown job type: {request.job_type}",
        )

    descriptor = JobDescriptor(
        job_type=request.job_type,
        args=request.args,
        queue=request.queue or settings.queues[0],
        schedule=build_schedule(request),
        max_attempts=request.max_attempts,
    )

    with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
        span.set_attribute("job.type", descriptor.job_type)
        span.set_attribute("job.queue", descriptor.queue)
        job_id = await queue.enqueue(descriptor)
        span.set_attribute("job.id", str(job_id))

    if metrics is not None:
        metrics.record_job_enqueued(descriptor.queue, descriptor.job_type)

    job = await queue.get(job_id)

    return EnqueueJobResponse(
        id=job_id,
        job_type=descriptor.job_type,
        queue=descriptor.queue,
        status=job.status if job else JobStatus.ENQUEUED,
        scheduled_at=job.scheduled_at if job else None,
    )


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    description="Get detailed information about a specific job.",
)
async def get_job(job_id: UUID, queue: QueueDep) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        HTTPException: If job not found.
    """
    job = await queue.get(job_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    return JobResponse.from_record(job)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List recent jobs",
    description="List the most recently updated jobs with optional status filtering.",
)
async def list_jobs(
    queue: QueueDep,
    limit: int = Query(default=20, ge=1, le=200),
    status: JobStatus | None = Query(default=None),
) -> JobListResponse:
    jobs = await queue.recent(limit=limit, status=status)
    return JobListResponse(
        jobs=[JobResponse.from_record(job) for job in jobs],
        total=len(jobs),
    )
