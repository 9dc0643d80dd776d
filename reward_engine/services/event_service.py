"""
Event Service - Event types and event logging

Logging an event writes the EventLog row first and only then publishes the
job, so the worker always finds the log it is told about.
"""
import logging
from typing import Any, Dict, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reward_engine.db.models import Event, EventLog
from reward_engine.errors import EventNotFoundError, InvalidRequestError
from reward_engine.services.community_service import community_service
from reward_engine.worker.queue import EventQueue

logger = logging.getLogger(__name__)


class EventService:
    """Service for event types and the event log stream"""

    def create_event(
        self,
        db: Session,
        user_id: str,
        community_id: str,
        tag: str
    ) -> Event:
        """Create an event type; requires edit access on the community"""
        community_service.require_edit_access(db, community_id, user_id)

        event = Event(tag=tag, community_id=community_id, created_by_id=user_id)
        db.add(event)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise InvalidRequestError(
                "Event tag already exists in community",
                data={"community_id": community_id, "tag": tag}
            )
        db.refresh(event)

        logger.info(f"Created event {event.id} ({tag}) in community {community_id}")
        return event

    def get_event(self, db: Session, event_id: str) -> Event:
        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise EventNotFoundError("Event not found", data={"event_id": event_id})
        return event

    def log_event(
        self,
        db: Session,
        queue: EventQueue,
        event_id: str,
        user_id: str,
        value: float = 0,
        metadata: Optional[Dict[str, Any]] = None,
        created_by_id: Optional[str] = None
    ) -> EventLog:
        """
        Record one occurrence of an event and enqueue it for evaluation.

        Queue failures propagate as QueueUnavailableError; the log itself
        is already committed at that point.
        """
        self.get_event(db, event_id)

        event_log = EventLog(
            event_id=event_id,
            user_id=user_id,
            value=value,
            log_metadata=metadata,
            created_by_id=created_by_id
        )
        db.add(event_log)
        db.commit()
        db.refresh(event_log)

        queue.enqueue(
            event_id=event_id,
            user_id=user_id,
            event_log_id=event_log.id,
            metadata=metadata
        )
        return event_log


# Singleton instance
event_service = EventService()
