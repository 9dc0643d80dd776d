"""
Events Router - Event types and event logging
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from reward_engine.api.schemas import (
    CreateEventRequest, EventLogResponse, EventResponse, LogEventRequest
)
from reward_engine.dependencies import get_current_user_id, get_db, get_event_queue
from reward_engine.services.event_service import event_service
from reward_engine.worker.queue import EventQueue

router = APIRouter()


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    request: CreateEventRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create an event type in a community the caller administers."""
    return event_service.create_event(db, user_id, request.community_id, request.tag)


@router.post("/log", response_model=EventLogResponse, status_code=status.HTTP_201_CREATED)
async def log_event(
    request: LogEventRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    queue: EventQueue = Depends(get_event_queue)
):
    """
    Log an event occurrence for a user.

    The log is stored and a job is queued for achievement evaluation;
    rewards are issued asynchronously. Returns 503 when the queue is down.
    """
    return event_service.log_event(
        db,
        queue,
        event_id=request.event_id,
        user_id=request.user_id,
        value=request.value,
        metadata=request.metadata,
        created_by_id=user_id
    )
