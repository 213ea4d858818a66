"""
Jobs API Routes
Generation job status for polling clients.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status

from dreamboat.api.deps import get_owner_id, get_queues, get_tracker
from dreamboat.schemas.job import JobResponse, QueueJobStatusResponse
from dreamboat.services.tracker import GenerationTracker
from dreamboat.workers.queue import QueueManager

router = APIRouter()


@router.get("/active", response_model=Optional[JobResponse])
async def get_active_job(
    owner_id: str = Depends(get_owner_id),
    tracker: GenerationTracker = Depends(get_tracker),
):
    """Newest in-progress job for the owner, or null."""
    return tracker.active_job(owner_id)


@router.get("/queue/{rq_job_id}", response_model=QueueJobStatusResponse)
async def get_queue_job_status(
    rq_job_id: str,
    queues: QueueManager = Depends(get_queues),
):
    """Status of a queued generation or sample job."""
    job_status = queues.get_job_status(rq_job_id)
    if job_status.get("error") is not None:
        job_status["error"] = str(job_status["error"])
    return job_status


@router.get("/{job_id}", response_model=JobResponse)
async def get_job_status(
    job_id: str,
    tracker: GenerationTracker = Depends(get_tracker),
):
    """Get generation job status."""
    job = tracker.get(job_id)

    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )

    return job


@router.get("", response_model=List[JobResponse])
async def list_jobs(
    owner_id: Optional[str] = None,
    limit: int = 20,
    x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id"),
    tracker: GenerationTracker = Depends(get_tracker),
):
    """List an owner's jobs, newest first."""
    owner = owner_id or x_owner_id
    if not owner:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="owner_id is required"
        )
    return tracker.list_for_owner(owner, limit=limit)
