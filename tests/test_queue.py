from unittest.mock import MagicMock

import pytest
from kombu.exceptions import OperationalError

from reward_engine.config import Settings
from reward_engine.errors import QueueUnavailableError
from reward_engine.worker.celery_app import create_celery_app
from reward_engine.worker.queue import PROCESS_EVENT_JOB_TASK, EventJob, EventQueue


@pytest.fixture
def celery_app():
    app = MagicMock()
    app.send_task.return_value = MagicMock(id="task-1")
    return app


def test_enqueue_publishes_job(celery_app):
    queue = EventQueue(celery_app, "events")

    assert queue.enqueue("e-1", "u-1", event_log_id="log-1", metadata={"order_id": "A-1"}) is None

    celery_app.send_task.assert_called_once_with(
        PROCESS_EVENT_JOB_TASK,
        kwargs={"payload": {
            "event_id": "e-1",
            "user_id": "u-1",
            "event_log_id": "log-1",
            "metadata": {"order_id": "A-1"}
        }},
        queue="events"
    )


def test_enqueue_omits_empty_fields(celery_app):
    EventQueue(celery_app, "events").enqueue("e-1", "u-1")

    kwargs = celery_app.send_task.call_args.kwargs["kwargs"]
    assert kwargs == {"payload": {"event_id": "e-1", "user_id": "u-1"}}


def test_broker_down_raises_queue_unavailable(celery_app):
    celery_app.send_task.side_effect = OperationalError("Connection refused")

    with pytest.raises(QueueUnavailableError) as exc_info:
        EventQueue(celery_app, "events").enqueue("e-1", "u-1", event_log_id="log-1")

    assert exc_info.value.status_code == 503
    assert exc_info.value.data["event_log_id"] == "log-1"


def test_event_job_ignores_unknown_fields():
    job = EventJob.model_validate({"event_id": "e-1", "user_id": "u-1", "source": "pos"})

    assert job.model_dump(exclude_none=True) == {"event_id": "e-1", "user_id": "u-1"}


def test_celery_app_delivers_at_least_once():
    config = Settings(EVENT_QUEUE_NAME="achievements", EVENT_JOB_TIME_LIMIT_SECONDS=15)

    app = create_celery_app(config)

    assert app.conf.task_acks_late is True
    assert app.conf.task_reject_on_worker_lost is True
    assert app.conf.worker_prefetch_multiplier == 1
    assert app.conf.task_soft_time_limit == 15
    assert app.conf.task_time_limit == 25
    assert app.conf.task_routes[PROCESS_EVENT_JOB_TASK] == {"queue": "achievements"}
