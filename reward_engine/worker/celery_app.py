"""
Celery Application Configuration

Run the achievement worker with:
    celery -A reward_engine.worker.celery_app worker -Q events
"""
from celery import Celery
from reward_engine.config import Settings, settings


def create_celery_app(config: Settings) -> Celery:
    """Build the Celery app for the given settings"""
    app = Celery(
        "reward_engine_worker",
        broker=config.CELERY_BROKER_URL,
        backend=config.CELERY_RESULT_BACKEND,
        include=[
            "reward_engine.worker.tasks"
        ]
    )

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_track_started=True,
        # Per-job limit; the hard limit leaves room for the retry bookkeeping
        task_soft_time_limit=config.EVENT_JOB_TIME_LIMIT_SECONDS,
        task_time_limit=config.EVENT_JOB_TIME_LIMIT_SECONDS + 10,
        # At-least-once: ack only after the job finished
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        result_expires=3600,
    )

    app.conf.task_routes = {
        "reward_engine.worker.tasks.process_event_job": {"queue": config.EVENT_QUEUE_NAME},
    }

    return app


# Importable app for the celery CLI
celery_app = create_celery_app(settings)
