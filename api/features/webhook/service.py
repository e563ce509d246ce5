"""Webhook service: signature check, request construction, enqueue."""
from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
from typing import Optional

import structlog

from api.features.webhook.dtos import WebhookEvent, WebhookRequestBody, WebhookResult
from chat.exceptions import EnqueueError, ReplyDeliveryError, SignatureValidationError
from chat.gateways import ReplyGateway
from chat.models import ChatRequest
from workers.publisher import ChatRequestQueue

logger = structlog.get_logger(__name__)


def compute_signature(channel_secret: str, body: bytes) -> str:
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def derive_conversation_key(user_id: str, group_id: str) -> str:
    """Stable, non-reversible key: the group for group chats, else the user."""
    identity = group_id if group_id else user_id
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()


def to_epoch_seconds(timestamp_ms: int) -> int:
    # Round half up, as the channel timestamps are positive milliseconds
    return (timestamp_ms + 500) // 1000


class WebhookService:
    def __init__(
        self,
        *,
        channel_secret: str,
        chat_queue: ChatRequestQueue,
        reply_gateway: ReplyGateway,
        fallback_text: str,
    ):
        self.channel_secret = channel_secret
        self.chat_queue = chat_queue
        self.reply_gateway = reply_gateway
        self.fallback_text = fallback_text

    def verify_signature(self, body: bytes, signature: str) -> None:
        if not signature or not self.channel_secret:
            raise SignatureValidationError()
        expected = compute_signature(self.channel_secret, body)
        if not hmac.compare_digest(expected, signature):
            raise SignatureValidationError()

    def build_chat_request(self, event: WebhookEvent) -> Optional[ChatRequest]:
        """Return a ChatRequest for text message events, None for anything else."""
        if event.type != "message":
            logger.debug("webhook.event_skipped", event_type=event.type)
            return None
        if event.message is None or event.message.type != "text":
            logger.debug(
                "webhook.message_skipped",
                message_type=event.message.type if event.message else None,
            )
            return None
        if not event.replyToken or event.source is None:
            logger.debug("webhook.message_skipped", reason="no reply token or source")
            return None

        user_id = event.source.userId or ""
        group_id = (event.source.groupId or "") if event.source.type == "group" else ""
        return ChatRequest(
            message_id=event.message.id,
            conversation_key=derive_conversation_key(user_id, group_id),
            user_id=user_id,
            group_id=group_id,
            reply_token=event.replyToken,
            message_text=event.message.text or "",
            received_at_epoch_seconds=to_epoch_seconds(event.timestamp),
            timestamp=event.timestamp,
            mode="chat",
        )

    async def handle(self, body: bytes, signature: str) -> WebhookResult:
        self.verify_signature(body, signature)
        payload = WebhookRequestBody.model_validate_json(body)

        requests = [self.build_chat_request(event) for event in payload.events]
        to_enqueue = [r for r in requests if r is not None]
        result = WebhookResult(skipped=len(requests) - len(to_enqueue))

        outcomes = await asyncio.gather(*(self._enqueue(r) for r in to_enqueue))
        result.accepted = sum(1 for ok in outcomes if ok)
        result.failed = len(outcomes) - result.accepted
        logger.info(
            "webhook.handled",
            events=len(payload.events),
            accepted=result.accepted,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    async def _enqueue(self, request: ChatRequest) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.chat_queue.publish, request)
            return True
        except EnqueueError as e:
            logger.error(
                "webhook.enqueue_failed", message_id=request.message_id, error=str(e)
            )

        # Tell the user to resend; the reply token is still fresh here
        try:
            await self.reply_gateway.send(request.reply_token, self.fallback_text)
        except ReplyDeliveryError as e:
            logger.error(
                "webhook.fallback_reply_failed",
                message_id=request.message_id,
                error_code=e.error_code,
            )
        return False
