"""Publisher side of the chat queue, used by the webhook ingress."""
from __future__ import annotations

from typing import Optional

import structlog
from celery import Celery
from kombu.exceptions import KombuError

from chat.exceptions import EnqueueError
from chat.models import ChatRequest

logger = structlog.get_logger(__name__)

PROCESS_CHAT_REQUEST_TASK = "workers.tasks.process_chat_request"


class ChatRequestQueue:
    """Send chat requests to the worker by task name.

    Publishing by name keeps the API process free of worker imports.
    """

    def __init__(self, queue_name: str = "chat", app: Optional[Celery] = None):
        if app is None:
            from workers.celery_app import app as celery_app

            app = celery_app
        self.app = app
        self.queue_name = queue_name

    def publish(self, request: ChatRequest) -> str:
        try:
            result = self.app.send_task(
                PROCESS_CHAT_REQUEST_TASK,
                args=[request.model_dump(mode="json")],
                queue=self.queue_name,
            )
        except (KombuError, OSError) as e:
            raise EnqueueError(
                f"Failed to enqueue chat request: {e}",
                {"message_id": request.message_id},
            ) from e
        logger.info(
            "chat_request.enqueued",
            task_id=result.id,
            message_id=request.message_id,
            conversation_key=request.conversation_key,
        )
        return result.id
