"""
Jobs Router - Dead-lettered event jobs
"""
from datetime import datetime
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from reward_engine.api.schemas import FailedJobResponse
from reward_engine.db.models import FailedEventJob
from reward_engine.dependencies import get_current_user_id, get_db, get_event_queue
from reward_engine.errors import AccessDeniedError
from reward_engine.services.community_service import community_service
from reward_engine.worker.queue import EventJob, EventQueue

router = APIRouter()


def require_system_admin(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> str:
    if not community_service.is_system_admin(db, user_id):
        raise AccessDeniedError("System admin access required", data={"user_id": user_id})
    return user_id


@router.get("/failed", response_model=List[FailedJobResponse])
async def list_failed_jobs(
    include_requeued: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    admin_id: str = Depends(require_system_admin),
    db: Session = Depends(get_db)
):
    """List event jobs parked after exhausting their retries."""
    query = db.query(FailedEventJob)
    if not include_requeued:
        query = query.filter(FailedEventJob.requeued_at.is_(None))
    return query.order_by(FailedEventJob.created_at.desc()).limit(limit).all()


@router.post("/failed/{job_id}/requeue", response_model=FailedJobResponse)
async def requeue_failed_job(
    job_id: int,
    admin_id: str = Depends(require_system_admin),
    db: Session = Depends(get_db),
    queue: EventQueue = Depends(get_event_queue)
):
    """Send a parked job back to the worker queue."""
    failed_job = db.query(FailedEventJob).filter(FailedEventJob.id == job_id).first()
    if not failed_job:
        raise HTTPException(status_code=404, detail="Failed job not found")
    if failed_job.requeued_at is not None:
        raise HTTPException(status_code=409, detail="Failed job already requeued")

    job = EventJob.model_validate(failed_job.payload)
    queue.enqueue(
        event_id=job.event_id,
        user_id=job.user_id,
        event_log_id=job.event_log_id,
        metadata=job.metadata
    )

    failed_job.requeued_at = datetime.utcnow()
    db.commit()
    db.refresh(failed_job)
    return failed_job
