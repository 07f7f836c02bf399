"""
Recurring trigger routes.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from pinger.api.dependencies import ActivatorDep, QueueDep, SettingsDep
from pinger.constants import API_V1_PREFIX
from pinger.types.api import ManualActionResponse, RecurringJobRequest, RecurringJobResponse
from pinger.types.job import JobDescriptor

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/recurring", tags=["Recurring jobs"])


def _not_found(recurring_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Recurring job not found: {recurring_id}",
    )


@router.get(
    "",
    response_model=list[RecurringJobResponse],
    summary="List recurring jobs",
)
async def list_recurring(queue: QueueDep) -> list[RecurringJobResponse]:
    return [RecurringJobResponse.from_record(r) for r in await queue.list_recurring()]


@router.put(
    "/{recurring_id}",
    response_model=RecurringJobResponse,
    summary="Create or replace a recurring job",
    description="Register a cron trigger that periodically enqueues a job.",
)
async def put_recurring(
    recurring_id: str,
    request: RecurringJobRequest,
    queue: QueueDep,
    activator: ActivatorDep,
    settings: SettingsDep,
) -> RecurringJobResponse:
    """
    Create or replace a recurring trigger.

    Raises:
        HTTPException: 400 for unknown job types or invalid cron expressions.
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
        max_attempts=request.max_attempts,
    )

    try:
        record = await queue.schedule_recurring(recurring_id, request.cron, descriptor)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    logger.info(
        "Recurring job scheduled",
        extra={"recurring_id": recurring_id, "cron": record.cron},
    )
    return RecurringJobResponse.from_record(record)


@router.delete(
    "/{recurring_id}",
    response_model=ManualActionResponse,
    summary="Remove a recurring job",
)
async def delete_recurring(recurring_id: str, queue: QueueDep) -> ManualActionResponse:
    if not await queue.remove_recurring(recurring_id):
        raise _not_found(recurring_id)

    logger.info("Recurring job removed", extra={"recurring_id": recurring_id})
    return ManualActionResponse(
        id=recurring_id,
        status="removed",
        message="Recurring job removed",
    )


@router.post(
    "/{recurring_id}/trigger",
    response_model=ManualActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger a recurring job now",
    description="Enqueue the recurring job immediately without changing its schedule.",
)
async def trigger_recurring(recurring_id: str, queue: QueueDep) -> ManualActionResponse:
    job_id = await queue.trigger_recurring(recurring_id)
    if job_id is None:
        raise _not_found(recurring_id)

    return ManualActionResponse(
        id=str(job_id),
        status="enqueued",
        message=f"Recurring job {recurring_id} triggered",
    )
