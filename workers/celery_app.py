from celery import Celery
from kombu import Queue

from core.logging_config import setup_logging
from core.settings import SETTINGS

setup_logging(
    log_level=SETTINGS.APP.LOG_LEVEL,
    json_logs=SETTINGS.APP.JSON_LOGS,
    service_name=f"{SETTINGS.APP.SERVICE_NAME}-worker",
    environment=SETTINGS.APP.ENVIRONMENT,
)

CHAT_QUEUE = SETTINGS.CONVERSATION.CHAT_QUEUE_NAME

app = Celery(
    "chat",
    broker=SETTINGS.REDIS.CELERY_BROKER_URL,
    backend=SETTINGS.REDIS.CELERY_RESULT_BACKEND,
    include=["workers.tasks"],
)

app.conf.update(
    task_default_queue="default",
    task_queues=(
        Queue("default"),
        Queue(CHAT_QUEUE),
    ),
    task_routes={
        "workers.tasks.process_chat_request": {"queue": CHAT_QUEUE},
    },
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # At-least-once: ack after the execution, redeliver if the worker dies
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # One message per worker process at a time
    worker_prefetch_multiplier=1,
    # Above the orchestrator's own execution timeout
    task_soft_time_limit=int(SETTINGS.CONVERSATION.EXECUTION_TIMEOUT_SECONDS) + 15,
    task_time_limit=int(SETTINGS.CONVERSATION.EXECUTION_TIMEOUT_SECONDS) + 30,
    worker_hijack_root_logger=False,
)
