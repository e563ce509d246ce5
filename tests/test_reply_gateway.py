import asyncio
import json

import httpx
import pytest

from chat.exceptions import ReplyRejectedError, TokenExpiredError, TransientReplyError
from chat.gateways import ReplyGateway

ENDPOINT = "https://api.line.me/v2/bot/message/reply"


def _send(handler, reply_token="tok", text="hi there"):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            gateway = ReplyGateway(client, endpoint=ENDPOINT, access_token="secret")
            await gateway.send(reply_token, text)

    asyncio.run(_run())


def test_send_posts_reply_payload():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    _send(handler)

    assert captured["auth"] == "Bearer secret"
    assert captured["body"] == {
        "replyToken": "tok",
        "messages": [{"type": "text", "text": "hi there"}],
    }


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_server_errors_are_transient(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"message": "busy"})

    with pytest.raises(TransientReplyError) as exc_info:
        _send(handler)
    assert exc_info.value.retryable is True


def test_transport_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientReplyError):
        _send(handler)


def test_invalid_reply_token_is_terminal():
    def handler(request):
        return httpx.Response(400, json={"message": "Invalid reply token"})

    with pytest.raises(TokenExpiredError) as exc_info:
        _send(handler)
    assert exc_info.value.retryable is False


def test_other_client_errors_are_rejected():
    def handler(request):
        return httpx.Response(401, json={"message": "Authentication failed"})

    with pytest.raises(ReplyRejectedError) as exc_info:
        _send(handler)
    assert exc_info.value.details["status_code"] == 401
