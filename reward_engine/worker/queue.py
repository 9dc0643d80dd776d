"""
Event queue producer

EventQueue is built once per process around the Celery app and handed to
the code that logs events. Enqueueing only publishes the job message; all
business validation happens in the worker.
"""
import logging
from typing import Any, Dict, Optional

from celery import Celery
from kombu.exceptions import OperationalError as BrokerOperationalError
from pydantic import BaseModel, ConfigDict

from reward_engine.errors import QueueUnavailableError

logger = logging.getLogger(__name__)

PROCESS_EVENT_JOB_TASK = "reward_engine.worker.tasks.process_event_job"


class EventJob(BaseModel):
    """Payload of an event job; unknown fields are ignored"""
    model_config = ConfigDict(extra="ignore")

    event_id: str
    user_id: str
    event_log_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class EventQueue:
    """Publishes event jobs for the achievement worker"""

    def __init__(self, celery_app: Celery, queue_name: str):
        self.celery_app = celery_app
        self.queue_name = queue_name

    def enqueue(
        self,
        event_id: str,
        user_id: str,
        event_log_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Hand a job to the broker and return.

        Raises QueueUnavailableError when the broker cannot accept it.
        """
        job = EventJob(
            event_id=event_id,
            user_id=user_id,
            event_log_id=event_log_id,
            metadata=metadata
        )

        try:
            result = self.celery_app.send_task(
                PROCESS_EVENT_JOB_TASK,
                kwargs={"payload": job.model_dump(exclude_none=True)},
                queue=self.queue_name
            )
        except BrokerOperationalError as e:
            logger.error(f"Event queue unavailable: {e}")
            raise QueueUnavailableError(
                "Event queue unavailable",
                data={"event_id": event_id, "user_id": user_id, "event_log_id": event_log_id}
            ) from e

        logger.info(f"Enqueued event job {result.id} for event {event_id}, user {user_id}")
