import asyncio

import structlog
from billiard.exceptions import SoftTimeLimitExceeded
from pydantic import ValidationError

from chat.models import ChatRequest, ExecutionOutcome
from workers.celery_app import CHAT_QUEUE, app
from workers.initialization import worker_initializer

log = structlog.get_logger()


async def run_chat_request(request: ChatRequest) -> ExecutionOutcome:
    """Open the worker resources and run the orchestrator once."""
    async with worker_initializer.worker_context() as container:
        orchestrator = container.services.orchestrator()
        return await orchestrator.run(request)


@app.task(
    name="workers.tasks.process_chat_request",
    bind=True,
    queue=CHAT_QUEUE,
)
def process_chat_request(self, payload: dict) -> dict:
    """
    Process one queued chat message.

    No autoretry: a whole execution is never retried here. A second run only
    happens when the broker redelivers the message.
    """
    try:
        request = ChatRequest.model_validate(payload)
    except ValidationError as e:
        # Malformed payloads can never succeed; drop them
        log.error(
            "process_chat_request.invalid_payload",
            task_id=self.request.id,
            error_count=e.error_count(),
        )
        return {"status": "rejected", "error": "invalid payload"}

    delivery_info = self.request.delivery_info or {}
    log.info(
        "process_chat_request.started",
        task_id=self.request.id,
        message_id=request.message_id,
        redelivered=bool(delivery_info.get("redelivered")),
    )
    try:
        outcome = asyncio.run(run_chat_request(request))
    except SoftTimeLimitExceeded as e:
        log.warning(
            "process_chat_request.soft_time_limit_exceeded",
            message_id=request.message_id,
        )
        raise e

    log.info(
        "process_chat_request.finished",
        task_id=self.request.id,
        state=outcome.state.value,
        replied=outcome.replied,
        persisted=outcome.persisted,
    )
    return {"status": "done", **outcome.model_dump(mode="json")}
