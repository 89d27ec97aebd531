import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from beacon_server.dependencies import get_notification_queue, get_settings
from beacon_server.notifications.queue import NotificationQueue
from beacon_server.notifications.store import SECONDS_PER_DAY
from beacon_server.schemas.notifications import (
    CancelJobsRequest,
    CancelJobsResponse,
    CancelResult,
    CleanupResponse,
    EnqueueResponse,
    JanitorRunResponse,
    JobQueueStats,
    JobStatus,
    NotificationJobCreate,
    NotificationJobList,
    NotificationJobResponse,
    ProcessorStatus,
)
from beacon_server.settings import Settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


@router.post("/jobs", response_model=EnqueueResponse)
async def create_job(
    request: NotificationJobCreate,
    queue: NotificationQueue = Depends(get_notification_queue),
    settings: Settings = Depends(get_settings),
) -> EnqueueResponse:
    """Schedule a notification for later delivery."""
    if not settings.enable_notifications:
        raise HTTPException(status_code=403, detail="Notifications are disabled")

    now = queue.store.now()
    if request.scheduled_timestamp <= now:
        raise HTTPException(status_code=400, detail="Scheduled time must be in the future")

    recent = await queue.store.count_created_since(now - SECONDS_PER_DAY)
    if recent >= settings.notifications_daily_cap:
        raise HTTPException(
            status_code=429,
            detail=f"Daily notifications cap reached ({settings.notifications_daily_cap}). Try again later.",
        )

    job_id = await queue.add_job(request)
    return EnqueueResponse(id=job_id, scheduled_time=request.scheduled_timestamp)


@router.get("/jobs", response_model=NotificationJobList)
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    created_by: Optional[str] = Query(None, description="Filter by creator"),
    limit: int = Query(50, ge=1, le=100, description="Max number of jobs to return"),
    offset: int = Query(0, ge=0, description="Number of jobs to skip"),
    queue: NotificationQueue = Depends(get_notification_queue),
) -> NotificationJobList:
    jobs, total = await queue.list_jobs(
        status=status.value if status else None, created_by=created_by, limit=limit, offset=offset
    )
    return NotificationJobList(
        data=[NotificationJobResponse(**job.model_dump()) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + limit < total,
    )


@router.post("/jobs/cancel", response_model=CancelJobsResponse)
async def cancel_jobs(
    request: CancelJobsRequest,
    queue: NotificationQueue = Depends(get_notification_queue),
) -> CancelJobsResponse:
    results = [CancelResult(id=job_id, cancelled=await queue.cancel_job(job_id)) for job_id in request.job_ids]
    return CancelJobsResponse(cancelled=sum(1 for r in results if r.cancelled), results=results)


@router.get("/jobs/{job_id}", response_model=NotificationJobResponse)
async def get_job(job_id: str, queue: NotificationQueue = Depends(get_notification_queue)) -> NotificationJobResponse:
    job = await queue.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return NotificationJobResponse(**job.model_dump())


@router.post("/jobs/{job_id}/cancel", response_model=CancelResult)
async def cancel_job(job_id: str, queue: NotificationQueue = Depends(get_notification_queue)) -> CancelResult:
    return CancelResult(id=job_id, cancelled=await queue.cancel_job(job_id))


@router.get("/stats", response_model=JobQueueStats)
async def get_stats(queue: NotificationQueue = Depends(get_notification_queue)) -> JobQueueStats:
    return await queue.get_stats()


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup(
    days: int = Query(30, description="Delete terminal jobs processed more than this many days ago"),
    queue: NotificationQueue = Depends(get_notification_queue),
) -> CleanupResponse:
    deleted = await queue.cleanup(days)
    return CleanupResponse(deleted=deleted, retention_days=days)


@router.get("/processor", response_model=ProcessorStatus)
async def get_processor_status(queue: NotificationQueue = Depends(get_notification_queue)) -> ProcessorStatus:
    return queue.get_processor_status()


@router.post("/processor/start", response_model=ProcessorStatus)
async def start_processor(
    interval: Optional[float] = Query(None, gt=0, description="Seconds between ticks"),
    queue: NotificationQueue = Depends(get_notification_queue),
) -> ProcessorStatus:
    queue.start_processor(interval)
    return queue.get_processor_status()


@router.post("/processor/stop", response_model=ProcessorStatus)
async def stop_processor(queue: NotificationQueue = Depends(get_notification_queue)) -> ProcessorStatus:
    queue.stop_processor()
    return queue.get_processor_status()


@router.post("/janitor/run", response_model=JanitorRunResponse)
async def run_janitor(queue: NotificationQueue = Depends(get_notification_queue)) -> JanitorRunResponse:
    return await queue.run_janitor()
