"""LINE Messaging API reply client."""
from __future__ import annotations

import httpx
import structlog

from chat.exceptions import ReplyRejectedError, TokenExpiredError, TransientReplyError

logger = structlog.get_logger(__name__)

INVALID_REPLY_TOKEN = "invalid reply token"


class ReplyGateway:
    """Send one text message with a reply token.

    Failures are classified: ``TransientReplyError`` (retryable),
    ``TokenExpiredError`` and ``ReplyRejectedError`` (terminal).
    """

    def __init__(self, client: httpx.AsyncClient, endpoint: str, access_token: str):
        self.client = client
        self.endpoint = endpoint
        self.access_token = access_token

    async def send(self, reply_token: str, text: str) -> None:
        payload = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": text}],
        }
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            resp = await self.client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TransportError as e:
            raise TransientReplyError(
                f"Reply transport error: {e}", {"error_type": type(e).__name__}
            ) from e

        if resp.is_success:
            logger.info("reply.sent", status_code=resp.status_code, text_chars=len(text))
            return

        message = _error_message(resp)
        details = {"status_code": resp.status_code, "message": message}
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientReplyError(f"Reply failed with {resp.status_code}", details)
        if resp.status_code == 400 and INVALID_REPLY_TOKEN in message.lower():
            raise TokenExpiredError("Reply token expired or already used", details)
        raise ReplyRejectedError(f"Reply rejected with {resp.status_code}", details)


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json() or {}
    except ValueError:
        return resp.text
    if isinstance(data, dict):
        return str(data.get("message", ""))
    return ""
