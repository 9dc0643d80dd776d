"""
Celery Tasks for async processing
"""
import logging
from typing import Any, Dict, Optional

from celery.exceptions import SoftTimeLimitExceeded
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from reward_engine.config import settings
from reward_engine.db.database import SessionLocal
from reward_engine.db.models import FailedEventJob
from reward_engine.errors import RewardEngineError, TransientJobError
from reward_engine.services.achievement_dispatcher import achievement_dispatcher
from reward_engine.worker.celery_app import celery_app
from reward_engine.worker.queue import PROCESS_EVENT_JOB_TASK, EventJob

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, TransientJobError, SoftTimeLimitExceeded)


def get_db_session():
    """Get database session for tasks"""
    return SessionLocal()


def retry_countdown(retries: int) -> float:
    """Exponential backoff delay before retry number ``retries + 1``"""
    delay = settings.EVENT_JOB_RETRY_BACKOFF_SECONDS * (2 ** retries)
    return min(delay, settings.EVENT_JOB_RETRY_BACKOFF_MAX_SECONDS)


def run_event_job(payload: Dict[str, Any], dispatcher=None) -> Dict[str, Any]:
    """
    Validate and dispatch one event job.

    Malformed payloads and non-retryable engine errors (missing event,
    foreign event log) are logged and dropped. Retryable errors propagate
    so the task can schedule a retry.
    """
    dispatcher = dispatcher or achievement_dispatcher

    try:
        job = EventJob.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Dropping malformed event job {payload!r}: {e}")
        return {"status": "dropped", "reason": "INVALID_PAYLOAD"}

    db = get_db_session()
    try:
        result = dispatcher.process(db, job.event_id, job.user_id, job.event_log_id)
        return {"status": "completed", **result.to_dict()}
    except RewardEngineError as e:
        if e.retryable:
            raise
        logger.warning(f"Dropping event job for event {job.event_id}, user {job.user_id}: {e.message}")
        return {"status": "dropped", "reason": e.code.name}
    finally:
        db.close()


def dead_letter_job(
    payload: Dict[str, Any],
    error: BaseException,
    task_id: Optional[str] = None,
    attempts: int = 0
) -> Optional[int]:
    """Park a job that will not be retried again and alert operators"""
    logger.critical(f"Event job {task_id} dead-lettered after {attempts} attempts: {error!r}")

    db = get_db_session()
    try:
        failed_job = FailedEventJob(
            task_id=task_id,
            payload=payload,
            error=repr(error),
            attempts=attempts
        )
        db.add(failed_job)
        db.commit()
        return failed_job.id
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Could not record dead-lettered event job {task_id}")
        return None
    finally:
        db.close()


@celery_app.task(bind=True, name=PROCESS_EVENT_JOB_TASK, max_retries=settings.EVENT_JOB_MAX_RETRIES)
def process_event_job(self, payload: Dict[str, Any]):
    """
    Evaluate achievements for one logged event.

    - Transient failures retry with exponential backoff
    - After the last retry the job is parked in failed_event_jobs
    - Unexpected errors are parked immediately
    """
    try:
        result = run_event_job(payload)
    except TRANSIENT_ERRORS as e:
        retries = self.request.retries
        if retries >= self.max_retries:
            dead_letter_job(payload, e, task_id=self.request.id, attempts=retries + 1)
            raise

        countdown = retry_countdown(retries)
        logger.warning(f"Event job {self.request.id} failed ({e!r}), retry {retries + 1} in {countdown}s")
        raise self.retry(exc=e, countdown=countdown)
    except Exception as e:
        dead_letter_job(payload, e, task_id=self.request.id, attempts=self.request.retries + 1)
        raise

    logger.info(f"Event job {self.request.id} {result['status']}")
    return result
