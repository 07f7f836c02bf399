"""
Job dashboard routes.

The dashboard itself is read-only; manual retry and delete are separate
actions on a single job.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from pinger.api.dependencies import QueueDep, ServerDep
from pinger.constants import DASHBOARD_PREFIX, JobStatus
from pinger.types.api import (
    DashboardResponse,
    JobResponse,
    ManualActionResponse,
    QueueSummary,
    RecurringJobResponse,
)
from pinger.types.job import DashboardSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix=DASHBOARD_PREFIX, tags=["Dashboard"])


def to_response(snapshot: DashboardSnapshot) -> DashboardResponse:
    return DashboardResponse(
        server_name=snapshot.server_name,
        queues=[
            QueueSummary(
                queue=name,
                depth=snapshot.stats.depth(name),
                counts={s.value: snapshot.stats.count(name, s) for s in JobStatus},
            )
            for name in snapshot.queues
        ],
        running=[JobResponse.from_record(job) for job in snapshot.running],
        recent=[JobResponse.from_record(job) for job in snapshot.recent],
        recurring=[RecurringJobResponse.from_record(r) for r in snapshot.recurring],
        generated_at=snapshot.generated_at,
    )


@router.get(
    "",
    response_model=DashboardResponse,
    summary="Job dashboard",
    description="Queue counts, running jobs, recent history and recurring jobs.",
)
async def dashboard(
    server: ServerDep,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> DashboardResponse:
    return to_response(await server.dashboard(limit=limit))


@router.post(
    "/jobs/{job_id}/retry",
    response_model=ManualActionResponse,
    summary="Retry a job",
    description="Put a finished job back on its queue.",
)
async def retry_job(job_id: UUID, queue: QueueDep) -> ManualActionResponse:
    """
    Manually retry a job.

    Raises:
        HTTPException: 404 if not found, 409 if the job is not finished.
    """
    job = await queue.get(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    if not await queue.requeue(job_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job cannot be retried (current status: {job.status})",
        )

    logger.info("Job requeued manually", extra={"job_id": str(job_id)})
    return ManualActionResponse(
        id=str(job_id),
        status=JobStatus.ENQUEUED.value,
        message="Job queued for retry",
    )


@router.delete(
    "/jobs/{job_id}",
    response_model=ManualActionResponse,
    summary="Delete a job",
    description="Mark a job as deleted; it will not be executed.",
)
async def delete_job(job_id: UUID, queue: QueueDep) -> ManualActionResponse:
    """
    Manually delete a job.

    Raises:
        HTTPException: 404 if not found, 409 if already deleted.
    """
    job = await queue.get(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    if not await queue.delete(job_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Job is already deleted",
        )

    logger.info("Job deleted manually", extra={"job_id": str(job_id)})
    return ManualActionResponse(
        id=str(job_id),
        status=JobStatus.DELETED.value,
        message="Job deleted",
    )
