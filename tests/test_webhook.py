import asyncio
import hashlib
import json
from unittest.mock import MagicMock

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from api.features.webhook.controller import WebhookController
from api.features.webhook.dtos import WebhookEvent
from api.features.webhook.service import (
    WebhookService,
    compute_signature,
    derive_conversation_key,
    to_epoch_seconds,
)
from api.main import app
from chat.exceptions import EnqueueError, SignatureValidationError
from tests.conftest import RecordingReplyGateway

SECRET = "channel-secret"
FALLBACK = "Sorry, cannot accept your message. Please retry."


def _text_event(text="hello", source=None, timestamp=1_000_400, reply_token="rt-1"):
    return {
        "type": "message",
        "timestamp": timestamp,
        "replyToken": reply_token,
        "source": source or {"type": "user", "userId": "U1"},
        "message": {"id": "m-1", "type": "text", "text": text},
    }


def _body(*events):
    return json.dumps({"destination": "D", "events": list(events)}).encode("utf-8")


def _service(queue=None, reply=None):
    queue = queue or MagicMock()
    return WebhookService(
        channel_secret=SECRET,
        chat_queue=queue,
        reply_gateway=reply or RecordingReplyGateway(),
        fallback_text=FALLBACK,
    )


def test_conversation_key_prefers_group():
    assert derive_conversation_key("U1", "G1") == hashlib.sha256(b"G1").hexdigest()
    assert derive_conversation_key("U1", "") == hashlib.sha256(b"U1").hexdigest()


def test_timestamp_rounds_to_nearest_second():
    assert to_epoch_seconds(1_000_400) == 1000
    assert to_epoch_seconds(1_000_500) == 1001


def test_signature_mismatch_is_rejected():
    service = _service()
    with pytest.raises(SignatureValidationError):
        service.verify_signature(b"{}", "bogus")
    with pytest.raises(SignatureValidationError):
        service.verify_signature(b"{}", "")


def test_build_chat_request_from_group_event():
    service = _service()
    event = WebhookEvent.model_validate(
        _text_event(source={"type": "group", "groupId": "G1", "userId": "U1"})
    )

    request = service.build_chat_request(event)

    assert request.conversation_key == hashlib.sha256(b"G1").hexdigest()
    assert request.group_id == "G1"
    assert request.received_at_epoch_seconds == 1000
    assert request.reply_token == "rt-1"
    assert request.mode == "chat"


def test_room_event_keys_by_user():
    service = _service()
    event = WebhookEvent.model_validate(
        _text_event(source={"type": "room", "roomId": "R1", "groupId": "G1", "userId": "U1"})
    )
    assert service.build_chat_request(event).conversation_key == hashlib.sha256(b"U1").hexdigest()


@pytest.mark.parametrize(
    "event",
    [
        {"type": "follow", "timestamp": 1, "replyToken": "rt", "source": {"type": "user", "userId": "U1"}},
        {**_text_event(), "message": {"id": "m", "type": "sticker"}},
        {**_text_event(), "replyToken": None},
    ],
)
def test_non_text_events_are_skipped(event):
    assert _service().build_chat_request(WebhookEvent.model_validate(event)) is None


def test_handle_enqueues_text_messages():
    queue = MagicMock()
    service = _service(queue=queue)
    body = _body(_text_event(), {"type": "follow", "timestamp": 1})

    result = asyncio.run(service.handle(body, compute_signature(SECRET, body)))

    assert (result.accepted, result.skipped, result.failed) == (1, 1, 0)
    published = queue.publish.call_args.args[0]
    assert published.message_text == "hello"


def test_enqueue_failure_sends_fallback_reply():
    queue = MagicMock()
    queue.publish.side_effect = EnqueueError("broker down")
    reply = RecordingReplyGateway()
    service = _service(queue=queue, reply=reply)
    body = _body(_text_event())

    result = asyncio.run(service.handle(body, compute_signature(SECRET, body)))

    assert result.failed == 1
    assert reply.sent == [("rt-1", FALLBACK)]


class TestWebhookRouter:
    def setup_method(self):
        self.queue = MagicMock()
        controller = WebhookController(webhook_service=_service(queue=self.queue))
        self.override = app.container.controllers.webhook_controller.override(
            providers.Object(controller)
        )
        self.override.__enter__()
        self.client = TestClient(app)

    def teardown_method(self):
        self.override.__exit__(None, None, None)

    def test_valid_callback_is_accepted(self):
        body = _body(_text_event())
        response = self.client.post(
            "/api/v1/webhook",
            content=body,
            headers={"X-Line-Signature": compute_signature(SECRET, body)},
        )

        assert response.status_code == 202
        assert response.json()["data"]["accepted"] == 1
        self.queue.publish.assert_called_once()

    def test_bad_signature_is_unauthorized(self):
        response = self.client.post(
            "/api/v1/webhook",
            content=_body(_text_event()),
            headers={"X-Line-Signature": "bogus"},
        )

        assert response.status_code == 401
        self.queue.publish.assert_not_called()
